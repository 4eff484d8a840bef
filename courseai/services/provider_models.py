"""
项目模型列表

/api/models 在 Redis 中保存的提供商配置基础上刷新每个提供商的 models：
- OpenAI / Anthropic / Gemini / SambaNova：内置目录（需要 API key）
- NCSAHostedVLM：内置目录（提供商启用时）
- Ollama / NCSAHosted：服务器 /api/tags 中已下载、且在内置目录内的模型
- Azure / Bedrock / OpenAICompatible / WebLLM：模型由用户配置，保持原样

已有模型的 enabled / default 状态保持不变，新模型默认 enabled、非 default。
"""

import logging
from typing import Iterable

import httpx

from courseai.config import get_settings
from courseai.infra.ollama import get_ollama_model_ids
from courseai.schemas.providers import LLMProvider, LLMProviders, ProviderModel, ProviderName
from courseai.services.model_catalog import CATALOG_MODEL_IDS, OLLAMA_MODEL_IDS

logger = logging.getLogger(__name__)

KEY_REQUIRED_PROVIDERS = {
    ProviderName.OPENAI,
    ProviderName.ANTHROPIC,
    ProviderName.GEMINI,
    ProviderName.SAMBANOVA,
}


def merge_model_states(model_ids: Iterable[str], existing: list[ProviderModel]) -> list[ProviderModel]:
    """按 model_ids 顺序生成模型列表，沿用已有模型的配置与开关状态"""
    existing_by_id = {model.id: model for model in existing}
    models = []
    for model_id in model_ids:
        current = existing_by_id.get(model_id)
        if current is None:
            models.append(ProviderModel(id=model_id, name=model_id, enabled=True, default=False))
        else:
            models.append(current.model_copy(update={"default": bool(current.default)}))
    return models


async def _installed_ollama_models(provider: LLMProvider, base_url: str) -> None:
    try:
        installed = set(await get_ollama_model_ids(base_url))
    except httpx.HTTPError as e:
        logger.warning(f"获取 {provider.provider.value} 模型列表失败: {e}")
        provider.error = f"Failed to fetch models from {base_url}: {e}"
        provider.models = []
        return
    supported = [model_id for model_id in OLLAMA_MODEL_IDS if model_id in installed]
    provider.models = merge_model_states(supported, provider.models)


async def refresh_provider(provider: LLMProvider) -> LLMProvider:
    """刷新单个提供商的模型列表（返回副本）"""
    provider = provider.model_copy(deep=True)
    provider.error = None
    name = provider.provider

    if name == ProviderName.OLLAMA:
        if not provider.enabled or not provider.base_url:
            provider.models = []
        else:
            await _installed_ollama_models(provider, provider.base_url)
        return provider

    if name == ProviderName.NCSA_HOSTED:
        ollama_server_url = get_settings().ollama_server_url
        if not provider.enabled:
            provider.models = []
        elif not ollama_server_url:
            provider.error = "OLLAMA_SERVER_URL is not configured"
            provider.models = []
        else:
            await _installed_ollama_models(provider, ollama_server_url)
        return provider

    model_ids = CATALOG_MODEL_IDS.get(name)
    if model_ids is None:
        return provider

    if name in KEY_REQUIRED_PROVIDERS:
        api_key = provider.api_key
        if name == ProviderName.OPENAI:
            api_key = api_key or get_settings().openai_api_key
        if not api_key:
            provider.models = []
            return provider
    elif not provider.enabled:
        provider.models = []
        return provider

    provider.models = merge_model_states(model_ids, provider.models)
    return provider


async def list_provider_models(providers: LLMProviders) -> LLMProviders:
    """补全全部提供商并刷新模型列表"""
    refreshed = {}
    for name, provider in providers.ensure_all().root.items():
        refreshed[name] = await refresh_provider(provider)
    return LLMProviders(refreshed)
