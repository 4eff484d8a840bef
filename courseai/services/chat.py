"""
对话服务 (Chat Service)

负责一次对话请求的完整流程：
1. 构建 prompt（系统提示词 + 检索上下文 + 工具输出）
2. 根据模型 ID 找到提供商
3. 调用对应后端，返回完整文本或文本流
"""

import logging
from typing import AsyncIterator, Awaitable, Callable

from courseai.exceptions import ChatError, UnsupportedProviderError
from courseai.infra.bedrock import run_bedrock_chat
from courseai.infra.gemini import run_gemini_chat
from courseai.infra.llm import (
    run_azure_chat,
    run_openai_chat,
    run_openai_compatible_chat,
    run_sambanova_chat,
    run_vllm_chat,
)
from courseai.infra.logging import RequestTimer, set_course_name, set_model_route
from courseai.infra.ollama import run_ollama_chat
from courseai.infra.redis_cache import get_redis_cache
from courseai.schemas.chat import ChatBody, Conversation
from courseai.schemas.providers import LLMProvider, LLMProviders, ProviderName
from courseai.services.model_catalog import find_provider_for_model
from courseai.services.prompt_builder import build_prompt

logger = logging.getLogger(__name__)

ChatResult = str | AsyncIterator[str]
Backend = Callable[[Conversation, LLMProvider, bool], Awaitable[ChatResult]]


def _backend_for(name: ProviderName) -> Backend:
    """提供商 → 后端调用函数"""
    if name in (ProviderName.ANTHROPIC, ProviderName.WEBLLM):
        # Anthropic 不在服务端支持范围；WebLLM 在浏览器内运行
        raise UnsupportedProviderError(f"Provider {name.value} is not supported by the chat server.")

    backends: dict[ProviderName, Backend] = {
        ProviderName.NCSA_HOSTED_VLM: run_vllm_chat,
        ProviderName.NCSA_HOSTED: run_ollama_chat,
        ProviderName.OLLAMA: run_ollama_chat,
        ProviderName.OPENAI: run_openai_chat,
        ProviderName.AZURE: run_azure_chat,
        ProviderName.GEMINI: run_gemini_chat,
        ProviderName.BEDROCK: run_bedrock_chat,
        ProviderName.SAMBANOVA: run_sambanova_chat,
        ProviderName.OPENAI_COMPATIBLE: run_openai_compatible_chat,
    }
    backend = backends.get(name)
    if backend is None:
        raise UnsupportedProviderError(f"Unsupported model provider: {name.value}")
    return backend


async def _load_providers(body: ChatBody) -> LLMProviders:
    if body.llm_providers is not None and body.llm_providers.root:
        return body.llm_providers
    return await get_redis_cache().get_llm_providers(body.course_name)


async def route_model_request(body: ChatBody) -> ChatResult:
    """
    把已构建 prompt 的对话发送到模型提供商

    Args:
        body: 请求体，conversation 中最后一条消息需已写入 final prompt

    Returns:
        str | AsyncIterator[str]: stream=False 返回完整文本，否则返回文本流

    Raises:
        ChatError: 对话为空
        UnsupportedProviderError: 模型或提供商不受支持
        ProviderConfigError: 提供商缺少必要配置
    """
    conversation = body.conversation
    if conversation is None or not conversation.messages:
        raise ChatError("Conversation messages array is empty", code="EMPTY_CONVERSATION", status_code=400)

    providers = await _load_providers(body)
    provider = find_provider_for_model(providers, conversation.model.id)
    backend = _backend_for(provider.provider)
    set_model_route(conversation.model.id, provider.provider.value)

    logger.info(
        f"路由模型请求: course={body.course_name}, model={conversation.model.id}, "
        f"provider={provider.provider.value}, stream={body.stream}"
    )
    return await backend(conversation, provider, body.stream)


async def handle_chat(body: ChatBody) -> ChatResult:
    """
    处理一次对话请求：构建 prompt → 路由到模型

    Returns:
        str | AsyncIterator[str]: 模型输出
    """
    set_course_name(body.course_name)
    timer = RequestTimer()

    conversation = await build_prompt(
        body.conversation,
        body.course_name,
        course_metadata=body.course_metadata,
        mode=body.mode,
        summary=body.summary,
    )
    timer.mark("build_prompt")

    result = await route_model_request(body.model_copy(update={"conversation": conversation}))
    timer.mark("route_model")

    logger.info(f"对话请求已发出: course={body.course_name}, metrics={timer.get_metrics()}")
    return result
