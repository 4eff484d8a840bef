"""
对话接口

POST /api/allNewRoutingChat

- stream=true：返回 text/plain 流，推理内容以 <think>...</think> 内联
- stream=false：返回 {"choices": [{"message": {"content": "..."}}]}

响应开始之前的错误映射为 HTTP 状态码；流式输出过程中的错误以文本形式写入流中。
"""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from courseai.exceptions import ChatError
from courseai.schemas.chat import ChatBody
from courseai.services.chat import handle_chat

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # 禁用 nginx 缓冲
}


async def _close_stream(chunks: AsyncIterator[str]) -> None:
    """释放上游连接（客户端断开或响应未被迭代时）"""
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()


async def _text_stream(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """转发模型输出；出错时把错误信息写入流并结束"""
    try:
        async for text in chunks:
            yield text
    except ChatError as e:
        logger.warning(f"流式输出中断: code={e.code}, error={e.message}")
        yield f"\n{e.message}\n"
    except Exception as e:
        logger.exception(f"流式输出失败: {e}")
        yield f"\n{e}\n"
    finally:
        await _close_stream(chunks)


@router.post("/allNewRoutingChat")
async def all_new_routing_chat(body: ChatBody):
    """
    对话入口

    构建 prompt 后按模型 ID 路由到对应提供商。
    """
    try:
        result = await handle_chat(body)
    except ChatError as e:
        logger.warning(f"对话请求失败: course={body.course_name}, code={e.code}, error={e.message}")
        raise HTTPException(
            status_code=e.status_code,
            detail={"code": e.code, "detail": e.message},
        ) from e

    if isinstance(result, str):
        if body.stream:
            # 部分后端只返回完整文本，仍以流的形式返回
            return StreamingResponse(
                iter([result]),
                media_type="text/plain; charset=utf-8",
                headers=STREAM_HEADERS,
            )
        return {"choices": [{"message": {"content": result}}]}

    if not body.stream:
        content = "".join([text async for text in result])
        return {"choices": [{"message": {"content": content}}]}

    return StreamingResponse(
        _text_stream(result),
        media_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
        background=BackgroundTask(_close_stream, result),
    )
