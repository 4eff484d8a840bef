"""
模型提供商配置模型

Redis `{project}-llms` 中保存的 JSON 形如：
```json
{
    "OpenAI": {"provider": "OpenAI", "enabled": true, "apiKey": "sk-...", "models": [...]},
    "Ollama": {"provider": "Ollama", "enabled": true, "baseUrl": "http://...", "models": [...]}
}
```
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator


class ProviderName(str, Enum):
    NCSA_HOSTED_VLM = "NCSAHostedVLM"
    NCSA_HOSTED = "NCSAHosted"
    ANTHROPIC = "Anthropic"
    OPENAI = "OpenAI"
    AZURE = "Azure"
    GEMINI = "Gemini"
    BEDROCK = "Bedrock"
    SAMBANOVA = "SambaNova"
    OPENAI_COMPATIBLE = "OpenAICompatible"
    OLLAMA = "Ollama"
    WEBLLM = "WebLLM"


# 模型查找顺序，与前端下拉框一致
LLM_PROVIDER_ORDER: list[ProviderName] = list(ProviderName)

SECRET_FIELDS = ("api_key", "secret_access_key", "access_key_id")


class ProviderModel(BaseModel):
    """提供商下的单个模型"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    token_limit: int = Field(default=128000, alias="tokenLimit")
    enabled: bool = True
    parameter_size: str | None = Field(default=None, alias="parameterSize")
    default: bool | None = None
    temperature: float | None = None


class LLMProvider(BaseModel):
    """单个提供商配置"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    provider: ProviderName | None = None
    enabled: bool = False
    base_url: str | None = Field(default=None, alias="baseUrl")
    api_key: str | None = Field(default=None, alias="apiKey")
    error: str | None = None
    models: list[ProviderModel] = Field(default_factory=list)
    # Azure
    azure_endpoint: str | None = Field(default=None, alias="AzureEndpoint")
    azure_deployment: str | None = Field(default=None, alias="AzureDeployment")
    # Bedrock
    region: str | None = None
    access_key_id: str | None = Field(default=None, alias="accessKeyId")
    secret_access_key: str | None = Field(default=None, alias="secretAccessKey")
    inference_profile_arn: str | None = Field(default=None, alias="inferenceProfileArn")

    def has_model(self, model_id: str) -> bool:
        return any(m.id == model_id for m in self.models)

    def get_model(self, model_id: str) -> ProviderModel | None:
        for model in self.models:
            if model.id == model_id:
                return model
        return None


class LLMProviders(RootModel[dict[ProviderName, LLMProvider]]):
    """全部提供商配置，键为提供商名称"""

    root: dict[ProviderName, LLMProvider] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_provider_names(self) -> "LLMProviders":
        # 键即提供商名称，配置中可省略 provider 字段
        for name, provider in self.root.items():
            if provider.provider is None:
                provider.provider = name
        return self

    def get(self, name: ProviderName) -> LLMProvider | None:
        return self.root.get(name)

    def enabled(self) -> list[LLMProvider]:
        """按 LLM_PROVIDER_ORDER 返回已启用的提供商"""
        return [
            self.root[name]
            for name in LLM_PROVIDER_ORDER
            if name in self.root and self.root[name].enabled
        ]

    def ensure_all(self) -> "LLMProviders":
        """按 LLM_PROVIDER_ORDER 补全缺失的提供商（enabled 的空占位项）"""
        providers = {}
        for name in LLM_PROVIDER_ORDER:
            providers[name] = self.root.get(name) or LLMProvider(provider=name, enabled=True)
        return LLMProviders(providers)

    def masked(self) -> "LLMProviders":
        """去除密钥字段，用于返回给前端"""
        masked = {
            name: provider.model_copy(update={field: None for field in SECRET_FIELDS})
            for name, provider in self.root.items()
        }
        return LLMProviders(masked)
