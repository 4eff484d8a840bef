"""
AWS Bedrock 客户端

使用 boto3 bedrock-runtime 的 Converse / ConverseStream 接口。
boto3 是同步库，调用通过 asyncio.to_thread 放到线程池执行。

推理模型返回的 reasoningContent 输出在 <think> 标签内。
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Iterator

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from courseai.config import get_settings
from courseai.exceptions import (
    ChatError,
    ModelNotFoundError,
    ProviderConfigError,
    ProviderConnectionError,
    ProviderRequestError,
)
from courseai.infra.streaming import ClosingStream
from courseai.schemas.chat import Conversation
from courseai.schemas.providers import LLMProvider
from courseai.services.message_convert import conversation_to_text_messages, to_bedrock_messages
from courseai.services.think_stream import format_reasoning_answer, ui_events_to_think_text

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

_STREAM_END = object()


def get_bedrock_client(provider: LLMProvider) -> Any:
    """创建 bedrock-runtime 客户端（凭证来自项目配置）"""
    if not provider.access_key_id or not provider.secret_access_key:
        raise ProviderConfigError(
            "AWS credentials are missing - accessKeyId and secretAccessKey are required for Bedrock"
        )
    return boto3.client(
        "bedrock-runtime",
        region_name=provider.region or DEFAULT_REGION,
        aws_access_key_id=provider.access_key_id,
        aws_secret_access_key=provider.secret_access_key,
    )


def build_converse_request(conversation: Conversation, provider: LLMProvider) -> dict[str, Any]:
    """构建 Converse 请求参数；配置了推理配置文件 ARN 时用它代替模型 ID"""
    settings = get_settings()
    system, messages = to_bedrock_messages(
        conversation_to_text_messages(conversation, require_final_prompt=True)
    )

    inference_config: dict[str, Any] = {"maxTokens": settings.bedrock_max_tokens}
    if conversation.temperature is not None:
        inference_config["temperature"] = conversation.temperature

    request: dict[str, Any] = {
        "modelId": provider.inference_profile_arn or conversation.model.id,
        "messages": messages,
        "inferenceConfig": inference_config,
    }
    if system:
        request["system"] = system
    return request


def _map_bedrock_error(e: Exception, model_id: str | None) -> ChatError:
    if isinstance(e, ClientError):
        error = e.response.get("Error", {})
        code = error.get("Code", "")
        message = error.get("Message", str(e))
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code == "ResourceNotFoundException":
            return ModelNotFoundError(f"Bedrock model '{model_id}' not found: {message}")
        return ProviderRequestError(f"Bedrock API error: {code} - {message}", upstream_status=status)
    if isinstance(e, EndpointConnectionError):
        return ProviderConnectionError(f"Bedrock connection failed: {e}")
    return ProviderRequestError(f"Bedrock request failed: {e}")


def _message_parts(response: dict[str, Any]) -> tuple[str, str]:
    """Converse 响应 → (推理, 正文)"""
    content = ((response.get("output") or {}).get("message") or {}).get("content") or []
    reasoning = []
    text = []
    for block in content:
        if "text" in block:
            text.append(block["text"])
        elif "reasoningContent" in block:
            reasoning.append((block["reasoningContent"].get("reasoningText") or {}).get("text", ""))
    return "".join(reasoning), "".join(text)


def converse_stream_to_ui_events(event: dict[str, Any]) -> dict[str, Any] | None:
    """ConverseStream 事件 → UI message 事件"""
    if "contentBlockDelta" in event:
        delta = event["contentBlockDelta"].get("delta") or {}
        if "reasoningContent" in delta:
            return {"type": "reasoning-delta", "delta": delta["reasoningContent"].get("text", "")}
        if "text" in delta:
            return {"type": "text-delta", "delta": delta["text"]}
    elif "contentBlockStop" in event:
        return {"type": "reasoning-end"}
    return None


async def run_bedrock_chat(
    conversation: Conversation,
    provider: LLMProvider,
    stream: bool,
) -> str | AsyncIterator[str]:
    """
    调用 Bedrock

    Raises:
        ProviderConfigError: 缺少 AWS 凭证
        ModelNotFoundError: 模型不存在或未开通
        ProviderRequestError: 上游返回错误
    """
    client = get_bedrock_client(provider)
    request = build_converse_request(conversation, provider)
    model_id = request["modelId"]

    logger.info(f"调用 Bedrock: model={model_id}, region={provider.region or DEFAULT_REGION}, stream={stream}")

    try:
        if not stream:
            response = await asyncio.to_thread(client.converse, **request)
        else:
            response = await asyncio.to_thread(client.converse_stream, **request)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Bedrock 调用失败: {e}")
        raise _map_bedrock_error(e, model_id) from e

    if not stream:
        reasoning, text = _message_parts(response)
        return format_reasoning_answer(reasoning, text)

    event_stream = response["stream"]

    async def _close() -> None:
        # botocore EventStream 关闭底层 HTTP 连接
        close = getattr(event_stream, "close", None)
        if close is not None:
            await asyncio.to_thread(close)

    return ClosingStream(_iter_stream(event_stream, model_id), _close)


async def _stream_events(event_stream: Any) -> AsyncIterator[dict[str, Any]]:
    iterator: Iterator[dict[str, Any]] = iter(event_stream)
    while True:
        event = await asyncio.to_thread(next, iterator, _STREAM_END)
        if event is _STREAM_END:
            break
        ui_event = converse_stream_to_ui_events(event)
        if ui_event is not None:
            yield ui_event


async def _iter_stream(event_stream: Any, model_id: str) -> AsyncIterator[str]:
    try:
        async for text in ui_events_to_think_text(_stream_events(event_stream)):
            yield text
    except (ClientError, BotoCoreError) as e:
        raise _map_bedrock_error(e, model_id) from e
