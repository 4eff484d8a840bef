"""
Gemini 客户端

使用 REST 接口：
- 非流式：models/{model}:generateContent
- 流式：models/{model}:streamGenerateContent?alt=sse

thought=true 的 part 视为推理内容，输出在 <think> 标签内。
"""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from courseai.config import get_settings
from courseai.exceptions import (
    ModelNotFoundError,
    ProviderConfigError,
    ProviderConnectionError,
    ProviderRequestError,
)
from courseai.infra.streaming import ClosingStream
from courseai.schemas.chat import Conversation
from courseai.schemas.providers import LLMProvider
from courseai.services.message_convert import conversation_to_text_messages, to_gemini_contents
from courseai.services.think_stream import SSEEvent, SSEParser, format_reasoning_answer, ui_events_to_think_text

logger = logging.getLogger(__name__)


def build_gemini_payload(conversation: Conversation) -> dict[str, Any]:
    """构建 generateContent 请求体"""
    settings = get_settings()
    system_instruction, contents = to_gemini_contents(conversation_to_text_messages(conversation))

    generation_config: dict[str, Any] = {"maxOutputTokens": settings.gemini_max_tokens}
    if conversation.temperature is not None:
        generation_config["temperature"] = conversation.temperature

    payload: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
    if system_instruction:
        payload["systemInstruction"] = system_instruction
    return payload


def _candidate_parts(result: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = result.get("candidates") or []
    if not candidates:
        return []
    return (candidates[0].get("content") or {}).get("parts") or []


def _status_error(status_code: int, body: str, model_id: str | None) -> Exception:
    if status_code == 404:
        return ModelNotFoundError(f"Gemini model '{model_id}' not found.")
    return ProviderRequestError(f"Gemini API error: {status_code} - {body}", upstream_status=status_code)


async def run_gemini_chat(
    conversation: Conversation,
    provider: LLMProvider,
    stream: bool,
) -> str | AsyncIterator[str]:
    """调用 Gemini，返回完整文本或文本流"""
    if not provider.api_key:
        raise ProviderConfigError("Gemini API key is missing")

    settings = get_settings()
    base_url = (provider.base_url or settings.gemini_api_base).rstrip("/")
    model_id = conversation.model.id
    payload = build_gemini_payload(conversation)

    logger.info(f"调用 Gemini: model={model_id}, stream={stream}")

    if not stream:
        url = f"{base_url}/models/{model_id}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=settings.llm_request_timeout) as client:
                response = await client.post(url, params={"key": provider.api_key}, json=payload)
        except httpx.TransportError as e:
            raise ProviderConnectionError(f"Gemini connection failed: {e}") from e
        if response.status_code >= 400:
            raise _status_error(response.status_code, response.text, model_id)

        parts = _candidate_parts(response.json())
        reasoning = "".join(p.get("text", "") for p in parts if p.get("thought"))
        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
        return format_reasoning_answer(reasoning, text)

    url = f"{base_url}/models/{model_id}:streamGenerateContent"
    client = httpx.AsyncClient(timeout=settings.llm_request_timeout)
    try:
        request = client.build_request("POST", url, params={"key": provider.api_key, "alt": "sse"}, json=payload)
        response = await client.send(request, stream=True)
        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise _status_error(response.status_code, body, model_id)
    except httpx.TransportError as e:
        await client.aclose()
        raise ProviderConnectionError(f"Gemini connection failed: {e}") from e
    except Exception:
        await client.aclose()
        raise

    async def _close() -> None:
        await response.aclose()
        await client.aclose()

    return ClosingStream(_iter_stream(response), _close)


async def _gemini_ui_events(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Gemini SSE → UI 事件"""
    parser = SSEParser()
    async for chunk in response.aiter_text():
        for event in gemini_sse_to_ui_events(parser.feed(chunk)):
            yield event
    for event in gemini_sse_to_ui_events(parser.flush()):
        yield event


def gemini_sse_to_ui_events(events: list[SSEEvent]) -> list[dict[str, Any]]:
    """解析 streamGenerateContent 的 SSE 事件，thought part 映射为 reasoning-delta"""
    ui_events: list[dict[str, Any]] = []
    for sse in events:
        try:
            result = json.loads(sse.data)
        except json.JSONDecodeError:
            continue
        if not isinstance(result, dict):
            continue
        if result.get("error"):
            ui_events.append({"type": "error", "errorText": result["error"].get("message")})
            continue
        for part in _candidate_parts(result):
            text = part.get("text")
            if not text:
                continue
            if part.get("thought"):
                ui_events.append({"type": "reasoning-delta", "delta": text})
            else:
                ui_events.append({"type": "text-delta", "delta": text})
    return ui_events


async def _iter_stream(response: httpx.Response) -> AsyncIterator[str]:
    try:
        async for text in ui_events_to_think_text(_gemini_ui_events(response)):
            yield text
    except httpx.TransportError as e:
        raise ProviderConnectionError(f"Gemini connection failed: {e}") from e
