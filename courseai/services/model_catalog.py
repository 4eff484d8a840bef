"""
模型目录与提供商解析

根据模型 ID 决定由哪个提供商处理：
    1. 项目配置中已启用、且列出该模型的提供商（按 LLM_PROVIDER_ORDER）
    2. 内置的已知模型 ID 表
"""

import logging

from courseai.exceptions import ProviderConfigError, UnsupportedProviderError
from courseai.schemas.providers import LLM_PROVIDER_ORDER, LLMProvider, LLMProviders, ProviderName

logger = logging.getLogger(__name__)


# ==================== 已知模型 ====================

# 元组顺序即 /api/models 中的展示顺序
OLLAMA_MODEL_IDS = (
    "llama3.1:8b-instruct-fp16",
    "llama3.1:70b-instruct-fp16",
    "llama3.2:1b-instruct-fp16",
    "llama3.2:3b-instruct-fp16",
    "deepseek-r1:14b-qwen-distill-fp16",
    "deepseek-r1:32b",
    "deepseek-r1:70b",
    "qwen2.5:14b-instruct-fp16",
    "qwen2.5:7b-instruct-fp16",
    "qwen3:32b",
    "gpt-oss:120b",
    "gpt-oss:20b",
    "gemma3:27b",
    "llama4:16x17b",
)

# 通过 think 参数返回 message.thinking 的 Ollama 模型
OLLAMA_REASONING_MODELS = {
    "gpt-oss:120b",
    "gpt-oss:20b",
    "deepseek-r1:70b",
    "deepseek-r1:32b",
    "deepseek-r1:14b-qwen-distill-fp16",
    "qwen3:32b",
}

# GPT-OSS 的 think 参数取 low / medium / high
GPT_OSS_MODELS = {"gpt-oss:120b", "gpt-oss:20b"}

NCSA_HOSTED_VLM_MODEL_IDS = (
    "Qwen/Qwen2.5-VL-72B-Instruct",
    "allenai/Molmo-7B-D-0924",
)

OPENAI_MODEL_IDS = (
    "gpt-4.1",
    "gpt-4.1-mini",
    "o3",
    "o4-mini",
    "gpt-4o-mini",
    "gpt-4.1-nano",
    "gpt-4o",
    "gpt-4-turbo",
    "gpt-5",
    "gpt-5-mini",
    "gpt-5-nano",
    "gpt-5-thinking",
    "o3-mini",
    "gpt-4",
    "gpt-3.5-turbo",
)

ANTHROPIC_MODEL_IDS = (
    "claude-3-7-sonnet-latest",
    "claude-3-7-sonnet-latest-thinking",
    "claude-3-5-sonnet-latest",
    "claude-3-5-haiku-latest",
    "claude-3-opus-latest",
    "claude-sonnet-4-20250514",
    "claude-opus-4-20250514",
    "claude-opus-4-1-20250805",
)

GEMINI_MODEL_IDS = (
    "gemini-2.5-pro-exp-03-25",
    "gemini-2.0-flash-lite",
    "gemini-2.0-flash-thinking-exp-01-21",
    "gemini-2.0-flash",
    "gemini-2.0-pro-exp-02-05",
    "learnlm-1.5-pro-experimental",
)

SAMBANOVA_MODEL_IDS = (
    "DeepSeek-V3-0324",
    "DeepSeek-R1",
    "DeepSeek-R1-Distill-Llama-70B",
    "Llama-4-Scout-17B-16E-Instruct",
    "Llama-4-Maverick-17B-128E-Instruct",
    "Meta-Llama-3.3-70B-Instruct",
    "Meta-Llama-3.2-3B-Instruct",
    "Meta-Llama-3.2-1B-Instruct",
    "Meta-Llama-3.1-405B-Instruct",
    "Meta-Llama-3.1-8B-Instruct",
    "QwQ-32B",
)

# 模型列表来自内置目录的提供商
CATALOG_MODEL_IDS: dict[ProviderName, tuple[str, ...]] = {
    ProviderName.NCSA_HOSTED_VLM: NCSA_HOSTED_VLM_MODEL_IDS,
    ProviderName.OPENAI: OPENAI_MODEL_IDS,
    ProviderName.ANTHROPIC: ANTHROPIC_MODEL_IDS,
    ProviderName.GEMINI: GEMINI_MODEL_IDS,
    ProviderName.SAMBANOVA: SAMBANOVA_MODEL_IDS,
}

# Bedrock 模型 ID 以厂商前缀开头，可带跨区域推理前缀（us. / eu. / apac.）
BEDROCK_VENDOR_PREFIXES = ("anthropic.", "meta.", "amazon.", "mistral.", "cohere.", "ai21.", "deepseek.")
BEDROCK_REGION_PREFIXES = ("us.", "eu.", "apac.")


def is_bedrock_model_id(model_id: str) -> bool:
    for region in BEDROCK_REGION_PREFIXES:
        if model_id.startswith(region):
            model_id = model_id[len(region):]
            break
    return model_id.startswith(BEDROCK_VENDOR_PREFIXES)


def supports_temperature(model_id: str) -> bool:
    """GPT-5 与 o 系列推理模型不接受 temperature"""
    model_id = model_id.lower()
    return not (model_id.startswith("gpt-5") or model_id.startswith("o"))


def uses_responses_api(model_id: str) -> bool:
    """推理模型走 Responses API，以获取推理摘要"""
    return not supports_temperature(model_id)


def ollama_think_param(model_id: str) -> bool | str | None:
    """Ollama think 参数：GPT-OSS 为 medium，其他推理模型为 True，非推理模型不传"""
    if model_id in GPT_OSS_MODELS:
        return "medium"
    if model_id in OLLAMA_REASONING_MODELS:
        return True
    return None


# ==================== 提供商解析 ====================

def _catalog_provider(model_id: str, providers: LLMProviders) -> ProviderName | None:
    if model_id in NCSA_HOSTED_VLM_MODEL_IDS:
        return ProviderName.NCSA_HOSTED_VLM
    if model_id in OLLAMA_MODEL_IDS:
        ollama = providers.get(ProviderName.OLLAMA)
        return ProviderName.OLLAMA if ollama and ollama.enabled else ProviderName.NCSA_HOSTED
    if model_id in ANTHROPIC_MODEL_IDS:
        return ProviderName.ANTHROPIC
    if model_id in OPENAI_MODEL_IDS:
        return ProviderName.OPENAI
    if model_id in GEMINI_MODEL_IDS:
        return ProviderName.GEMINI
    if model_id in SAMBANOVA_MODEL_IDS:
        return ProviderName.SAMBANOVA
    if is_bedrock_model_id(model_id):
        return ProviderName.BEDROCK
    return None


def find_provider_for_model(providers: LLMProviders, model_id: str | None) -> LLMProvider:
    """
    查找处理该模型的提供商

    Args:
        providers: 项目的提供商配置
        model_id: 模型 ID

    Returns:
        LLMProvider: 提供商配置；内置模型的提供商未配置时返回一个 disabled 的占位配置

    Raises:
        ProviderConfigError: 缺少模型 ID
        UnsupportedProviderError: 模型不被任何提供商支持
    """
    if not model_id:
        raise ProviderConfigError('Conversation model is missing "id" property.')

    for name in LLM_PROVIDER_ORDER:
        provider = providers.get(name)
        if provider and provider.enabled and provider.has_model(model_id):
            return provider

    name = _catalog_provider(model_id, providers)
    if name is None:
        raise UnsupportedProviderError(f"Model {model_id} is not supported.")

    logger.debug(f"模型 {model_id} 未在项目配置中找到，按内置目录路由到 {name.value}")
    return providers.get(name) or LLMProvider(provider=name, enabled=False)
