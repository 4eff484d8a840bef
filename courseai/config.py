"""
应用配置管理

使用 pydantic-settings 实现类型安全的配置管理：
- 支持从环境变量读取配置
- 支持从 .env 文件读取配置
- 提供默认值，确保开发环境开箱即用

配置优先级（从高到低）：
    1. 环境变量
    2. .env 文件
    3. 代码中的默认值

使用示例：
    from courseai.config import get_settings
    settings = get_settings()
    print(settings.redis_url)
"""

from functools import lru_cache

from pydantic_settings import BaseSettings

from courseai.exceptions import ProviderConfigError
from courseai.services.prompts import DEFAULT_SYSTEM_PROMPT


class Settings(BaseSettings):
    """
    全局配置类

    所有配置项都可以通过环境变量覆盖，环境变量名与字段名相同（不区分大小写）。
    例如：OLLAMA_SERVER_URL 环境变量会覆盖 ollama_server_url 字段。
    """

    # ==================== 应用基础配置 ====================
    app_name: str = "Course AI Chat Service"  # 应用名称，显示在 API 文档中
    environment: str = "dev"                   # 运行环境：dev/test/prod
    log_level: str = "INFO"                    # 日志级别：DEBUG/INFO/WARNING/ERROR
    log_json: bool | None = None               # 日志格式：True=JSON，None=自动（prod用JSON）
    cors_allow_origins: list[str] = ["*"]

    # ==================== Redis 配置（课程元数据 + 模型提供商） ====================
    redis_url: str | None = None  # 如 redis://localhost:6379/0，未配置时只使用请求体中的数据
    redis_course_metadata_key: str = "course_metadatas"  # 课程元数据 hash
    redis_llm_providers_suffix: str = "-llms"            # 提供商配置键：{project}-llms

    # ==================== 模型提供商端点 ====================
    # Ollama / NCSA 自托管
    ollama_server_url: str | None = None
    ncsa_hosted_api_key: str | None = None
    # NCSA 自托管 vLLM（视觉模型）
    ncsa_hosted_vlm_base_url: str | None = None

    openai_api_key: str | None = None  # 项目未配置 OpenAI key 时的兜底
    openai_api_base: str = "https://api.openai.com/v1"
    sambanova_api_base: str = "https://api.sambanova.ai/v1"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"

    llm_request_timeout: float = 120.0  # 上游请求超时（秒）

    # ==================== Prompt 配置 ====================
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    default_temperature: float = 0.1
    prompt_token_reserve: int = 1500     # 预留给图片、上游处理等的 token
    recent_history_messages: int = 4     # 预留 token 的最近消息数
    token_encoding_model: str = "gpt-4o"

    # ==================== 各后端最大输出 token ====================
    ollama_max_tokens: int = 4096
    openai_max_tokens: int = 8192
    azure_max_tokens: int = 8192
    vllm_max_tokens: int = 8192
    openai_compatible_max_tokens: int = 16384
    bedrock_max_tokens: int = 4096
    sambanova_max_tokens: int = 4096
    gemini_max_tokens: int = 8192

    model_config = {
        "env_file": ".env",           # 从 .env 文件加载配置
        "env_file_encoding": "utf-8",  # .env 文件编码
        "extra": "ignore",
    }

    def get_ollama_base_url(self, provider_base_url: str | None = None) -> str:
        """
        获取 Ollama 服务地址

        优先使用提供商配置中的 base_url，其次使用全局 OLLAMA_SERVER_URL。

        Raises:
            ProviderConfigError: 两者都未配置
        """
        base_url = provider_base_url or self.ollama_server_url
        if not base_url:
            raise ProviderConfigError(
                "Ollama server URL is not configured. "
                "Set the provider baseUrl or OLLAMA_SERVER_URL."
            )
        return base_url.rstrip("/")

    def get_vllm_base_url(self, provider_base_url: str | None = None) -> str:
        """获取 vLLM 服务地址"""
        base_url = provider_base_url or self.ncsa_hosted_vlm_base_url
        if not base_url:
            raise ProviderConfigError(
                "vLLM base URL is not configured. Set NCSA_HOSTED_VLM_BASE_URL."
            )
        return base_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    获取配置单例

    使用 @lru_cache 装饰器缓存配置实例，确保整个应用只创建一次 Settings 对象。

    Returns:
        Settings: 全局配置实例
    """
    return Settings()
