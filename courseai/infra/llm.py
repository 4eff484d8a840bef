"""
OpenAI 协议 LLM 客户端

覆盖所有使用 OpenAI SDK 的提供商：
- OpenAI（Chat Completions；gpt-5 / o 系列走 Responses API 并输出推理摘要）
- Azure OpenAI（v1 接口，endpoint 归一化为 .../openai/v1）
- NCSA 自托管 vLLM（视觉模型）
- SambaNova
- OpenAICompatible（任意兼容端点，如 OpenRouter）

每个 run_* 函数返回完整文本（stream=False）或文本异步迭代器（stream=True）。
上游请求在返回迭代器之前发出，连接 / 鉴权错误会直接抛出，便于映射 HTTP 状态码。

使用示例：
    from courseai.infra.llm import run_openai_chat

    result = await run_openai_chat(conversation, provider, stream=True)
    async for text in result:
        ...
"""

import logging
from functools import lru_cache
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from courseai.config import get_settings
from courseai.exceptions import (
    ChatError,
    ModelNotFoundError,
    ProviderConfigError,
    ProviderConnectionError,
    ProviderRequestError,
)
from courseai.schemas.chat import Conversation
from courseai.schemas.providers import LLMProvider
from courseai.services.message_convert import (
    conversation_to_compatible_messages,
    conversation_to_model_messages,
    to_responses_input,
)
from courseai.services.model_catalog import supports_temperature, uses_responses_api
from courseai.services.think_stream import (
    format_reasoning_answer,
    responses_events_to_ui_events,
    ui_events_to_think_text,
)

logger = logging.getLogger(__name__)

ChatResult = str | AsyncIterator[str]


@lru_cache(maxsize=16)
def _get_openai_compatible_client(api_key: str | None, base_url: str | None) -> AsyncOpenAI:
    """获取 OpenAI 兼容客户端（按 api_key + base_url 缓存）"""
    return AsyncOpenAI(
        api_key=api_key or "dummy",
        base_url=base_url,
        timeout=get_settings().llm_request_timeout,
    )


def normalize_azure_base_url(endpoint: str) -> str:
    """
    Azure endpoint 归一化为 https://xxx.openai.azure.com/openai

    去掉末尾的 / 和 /v1（包括 /openai/v1），缺少 /openai 时补上。
    """
    url = endpoint.strip().rstrip("/")
    if url.lower().endswith("/v1"):
        url = url[:-3]
    if not url.lower().endswith("/openai"):
        url = f"{url}/openai"
    return url


def _map_openai_error(e: Exception, provider_name: str, model_id: str | None) -> ChatError:
    """OpenAI SDK 异常 → ChatError"""
    if isinstance(e, openai.NotFoundError):
        return ModelNotFoundError(f"{provider_name} model '{model_id}' not found: {e.message}")
    if isinstance(e, openai.APIStatusError):
        return ProviderRequestError(
            f"{provider_name} API error: {e.message}",
            upstream_status=e.status_code,
        )
    if isinstance(e, openai.APIConnectionError):
        return ProviderConnectionError(f"{provider_name} connection failed: {e}")
    return ProviderRequestError(f"{provider_name} request failed: {e}")


def _temperature(conversation: Conversation, default: float = 0.7) -> float:
    return conversation.temperature if conversation.temperature is not None else default


# ==================== Chat Completions ====================

async def _iter_chat_chunks(stream: Any, provider_name: str, model_id: str | None) -> AsyncIterator[str]:
    try:
        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content
    except openai.OpenAIError as e:
        raise _map_openai_error(e, provider_name, model_id) from e


async def chat_completion(
    client: AsyncOpenAI,
    *,
    provider_name: str,
    model: str,
    messages: list[dict[str, Any]],
    stream: bool,
    **params: Any,
) -> ChatResult:
    """
    调用 Chat Completions

    Args:
        client: OpenAI 客户端
        provider_name: 提供商名称（用于日志与错误信息）
        model: 模型 ID
        messages: Chat Completions 消息
        stream: 是否流式
        **params: temperature / max_tokens / top_p / extra_body 等
    """
    logger.info(f"调用 {provider_name} Chat Completions: model={model}, stream={stream}, messages={len(messages)}")
    try:
        response = await client.chat.completions.create(
            model=model,
            messages=messages,
            stream=stream,
            **params,
        )
    except openai.OpenAIError as e:
        logger.error(f"{provider_name} 调用失败: {e}")
        raise _map_openai_error(e, provider_name, model) from e

    if stream:
        return _iter_chat_chunks(response, provider_name, model)
    return response.choices[0].message.content or ""


# ==================== Responses API ====================

def _reasoning_summary_text(response: Any) -> str:
    summaries = []
    for item in response.output or []:
        if getattr(item, "type", None) != "reasoning":
            continue
        for part in getattr(item, "summary", None) or []:
            text = getattr(part, "text", "")
            if text:
                summaries.append(text)
    return "\n\n".join(summaries)


async def responses_completion(
    client: AsyncOpenAI,
    *,
    provider_name: str,
    model: str,
    messages: list[dict[str, Any]],
    stream: bool,
    max_output_tokens: int,
    temperature: float | None = None,
) -> ChatResult:
    """
    调用 Responses API

    推理模型（不支持 temperature）请求推理摘要；流式结果中的推理内容包裹在 <think> 标签内。
    """
    instructions, input_items = to_responses_input(messages)
    params: dict[str, Any] = {
        "model": model,
        "input": input_items,
        "max_output_tokens": max_output_tokens,
    }
    if instructions:
        params["instructions"] = instructions
    if supports_temperature(model):
        params["temperature"] = temperature
    else:
        params["reasoning"] = {"summary": "auto"}

    logger.info(f"调用 {provider_name} Responses API: model={model}, stream={stream}")
    try:
        response = await client.responses.create(stream=stream, **params)
    except openai.OpenAIError as e:
        logger.error(f"{provider_name} Responses 调用失败: {e}")
        raise _map_openai_error(e, provider_name, model) from e

    if stream:
        return _iter_responses_think_text(response, provider_name, model)
    return format_reasoning_answer(_reasoning_summary_text(response), response.output_text or "")


async def _iter_responses_think_text(stream: Any, provider_name: str, model_id: str) -> AsyncIterator[str]:
    try:
        async for text in ui_events_to_think_text(responses_events_to_ui_events(stream)):
            yield text
    except openai.OpenAIError as e:
        raise _map_openai_error(e, provider_name, model_id) from e


# ==================== 各提供商入口 ====================

async def run_openai_chat(conversation: Conversation, provider: LLMProvider, stream: bool) -> ChatResult:
    """OpenAI：推理模型走 Responses API，其余走 Chat Completions"""
    settings = get_settings()
    api_key = provider.api_key or settings.openai_api_key
    if not api_key:
        raise ProviderConfigError("OpenAI API key is missing. Add it in the project's LLM settings.")

    client = _get_openai_compatible_client(api_key, provider.base_url or settings.openai_api_base)
    model_id = conversation.model.id
    messages = conversation_to_model_messages(conversation)

    if uses_responses_api(model_id):
        return await responses_completion(
            client,
            provider_name="OpenAI",
            model=model_id,
            messages=messages,
            stream=stream,
            max_output_tokens=settings.openai_max_tokens,
            temperature=_temperature(conversation),
        )

    return await chat_completion(
        client,
        provider_name="OpenAI",
        model=model_id,
        messages=messages,
        stream=stream,
        temperature=_temperature(conversation),
        max_tokens=settings.openai_max_tokens,
    )


async def run_azure_chat(conversation: Conversation, provider: LLMProvider, stream: bool) -> ChatResult:
    """Azure OpenAI：模型 ID 即部署名，使用 v1 接口"""
    if not provider.azure_endpoint:
        raise ProviderConfigError("AzureEndpoint is missing for Azure provider")
    if not provider.api_key:
        raise ProviderConfigError("Azure apiKey is missing for Azure provider")

    settings = get_settings()
    base_url = f"{normalize_azure_base_url(provider.azure_endpoint)}/v1"
    client = _get_openai_compatible_client(provider.api_key, base_url)
    deployment_id = conversation.model.id
    messages = conversation_to_model_messages(conversation)

    if uses_responses_api(deployment_id):
        return await responses_completion(
            client,
            provider_name="Azure",
            model=deployment_id,
            messages=messages,
            stream=stream,
            max_output_tokens=settings.azure_max_tokens,
            temperature=_temperature(conversation),
        )

    return await chat_completion(
        client,
        provider_name="Azure",
        model=deployment_id,
        messages=messages,
        stream=stream,
        temperature=_temperature(conversation),
        max_tokens=settings.azure_max_tokens,
    )


async def run_vllm_chat(conversation: Conversation, provider: LLMProvider, stream: bool) -> ChatResult:
    """NCSA 自托管 vLLM"""
    settings = get_settings()
    client = _get_openai_compatible_client(
        settings.ncsa_hosted_api_key,
        settings.get_vllm_base_url(provider.base_url),
    )
    params: dict[str, Any] = {
        "max_tokens": settings.vllm_max_tokens,
        "top_p": 0.8,
        "extra_body": {"repetition_penalty": 1.05},
    }
    if conversation.temperature is not None:
        params["temperature"] = conversation.temperature

    return await chat_completion(
        client,
        provider_name="vLLM",
        model=conversation.model.id,
        messages=conversation_to_compatible_messages(conversation),
        stream=stream,
        **params,
    )


async def run_sambanova_chat(conversation: Conversation, provider: LLMProvider, stream: bool) -> ChatResult:
    """SambaNova Cloud"""
    if not provider.api_key:
        raise ProviderConfigError("SambaNova API key is missing")

    settings = get_settings()
    client = _get_openai_compatible_client(provider.api_key, provider.base_url or settings.sambanova_api_base)
    return await chat_completion(
        client,
        provider_name="SambaNova",
        model=conversation.model.id,
        messages=conversation_to_compatible_messages(conversation),
        stream=stream,
        temperature=conversation.temperature or 0.7,
        max_tokens=settings.sambanova_max_tokens,
    )


async def run_openai_compatible_chat(conversation: Conversation, provider: LLMProvider, stream: bool) -> ChatResult:
    """任意 OpenAI 兼容端点（需配置 baseUrl 与 apiKey）"""
    if not provider.api_key:
        raise ProviderConfigError("OpenAI Compatible API key is missing")
    if not provider.base_url:
        raise ProviderConfigError("OpenAI Compatible base URL is missing")

    settings = get_settings()
    client = _get_openai_compatible_client(provider.api_key, provider.base_url)
    return await chat_completion(
        client,
        provider_name="OpenAICompatible",
        model=conversation.model.id,
        messages=conversation_to_compatible_messages(conversation),
        stream=stream,
        temperature=_temperature(conversation),
        max_tokens=settings.openai_compatible_max_tokens,
    )
