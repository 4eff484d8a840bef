"""
Ollama 客户端（本地 / NCSA 自托管）

直接调用 Ollama 原生 /api/chat 接口：
- 推理模型传入 think 参数，返回的 message.thinking 转换为 <think> 标签
- num_ctx 取模型的 token 上限
- 请求携带 NCSA_HOSTED_API_KEY（自托管网关鉴权）
"""

import logging
from typing import Any, AsyncIterator

import httpx

from courseai.config import get_settings
from courseai.exceptions import ModelNotFoundError, ProviderConnectionError, ProviderRequestError
from courseai.infra.streaming import ClosingStream
from courseai.schemas.chat import Conversation
from courseai.schemas.providers import LLMProvider
from courseai.services.message_convert import conversation_to_text_messages
from courseai.services.model_catalog import ollama_think_param
from courseai.services.think_stream import format_reasoning_answer, ollama_lines_to_think_text

logger = logging.getLogger(__name__)


def _headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {get_settings().ncsa_hosted_api_key or ''}"}


def build_ollama_payload(conversation: Conversation, stream: bool) -> dict[str, Any]:
    """构建 /api/chat 请求体"""
    settings = get_settings()
    model_id = conversation.model.id
    think = ollama_think_param(model_id)

    options: dict[str, Any] = {"num_ctx": conversation.model.token_limit}
    if conversation.temperature is not None:
        options["temperature"] = conversation.temperature
    if think is None:
        options["num_predict"] = settings.ollama_max_tokens

    payload: dict[str, Any] = {
        "model": model_id,
        "messages": conversation_to_text_messages(conversation),
        "stream": stream,
        "options": options,
    }
    if think is not None:
        payload["think"] = think
    return payload


async def get_ollama_model_ids(base_url: str) -> list[str]:
    """
    获取 Ollama 服务器上已下载的模型（/api/tags）

    Raises:
        httpx.HTTPError: 请求失败或返回错误状态码
    """
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(f"{base_url.rstrip('/')}/api/tags", headers=_headers())
        response.raise_for_status()
        data = response.json()

    model_ids = []
    for model in data.get("models") or []:
        model_id = model.get("model") or model.get("name")
        if model_id:
            model_ids.append(model_id)
    return model_ids


def _connection_error(e: Exception) -> ProviderConnectionError:
    return ProviderConnectionError(
        f"Ollama server connection failed: {e}. Please check if the Ollama server is running."
    )


def _status_error(status_code: int, body: str, model_id: str | None) -> Exception:
    if status_code == 404 or "not found" in body.lower():
        return ModelNotFoundError(
            f"Ollama model '{model_id}' not found on server. Please check if the model is installed."
        )
    return ProviderRequestError(f"Ollama API error: {status_code} - {body}", upstream_status=status_code)


async def run_ollama_chat(
    conversation: Conversation,
    provider: LLMProvider,
    stream: bool,
) -> str | AsyncIterator[str]:
    """
    调用 Ollama

    Args:
        conversation: 已构建 prompt 的对话
        provider: Ollama / NCSAHosted 提供商配置（base_url 为空时使用 OLLAMA_SERVER_URL）
        stream: 是否流式

    Returns:
        str | AsyncIterator[str]: 完整文本或文本流

    Raises:
        ProviderConfigError: 未配置服务地址
        ProviderConnectionError: 连接失败或超时
        ModelNotFoundError: 服务器上没有该模型
    """
    settings = get_settings()
    base_url = settings.get_ollama_base_url(provider.base_url)
    url = f"{base_url}/api/chat"
    payload = build_ollama_payload(conversation, stream)
    model_id = conversation.model.id

    logger.info(f"调用 Ollama: model={model_id}, stream={stream}, think={payload.get('think')}")

    if not stream:
        try:
            async with httpx.AsyncClient(timeout=settings.llm_request_timeout) as client:
                response = await client.post(url, json=payload, headers=_headers())
        except httpx.TransportError as e:
            logger.error(f"Ollama 连接失败: {e}")
            raise _connection_error(e) from e
        if response.status_code >= 400:
            raise _status_error(response.status_code, response.text, model_id)
        message = response.json().get("message") or {}
        return format_reasoning_answer(message.get("thinking"), message.get("content") or "")

    # 流式：先发出请求并检查状态码，再把响应交给生成器
    client = httpx.AsyncClient(timeout=settings.llm_request_timeout)
    try:
        request = client.build_request("POST", url, json=payload, headers=_headers())
        response = await client.send(request, stream=True)
        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise _status_error(response.status_code, body, model_id)
    except httpx.TransportError as e:
        await client.aclose()
        logger.error(f"Ollama 连接失败: {e}")
        raise _connection_error(e) from e
    except Exception:
        await client.aclose()
        raise

    async def _close() -> None:
        await response.aclose()
        await client.aclose()

    return ClosingStream(_iter_stream(response), _close)


async def _iter_stream(response: httpx.Response) -> AsyncIterator[str]:
    try:
        async for text in ollama_lines_to_think_text(response.aiter_lines()):
            yield text
    except httpx.TransportError as e:
        raise _connection_error(e) from e
