"""
上游文本流的连接释放

后端在返回文本流之前已经打开了上游连接（httpx 响应 / Bedrock EventStream）。
ClosingStream 保证流正常结束、出错、被提前关闭或从未被迭代时都会释放连接：
调用方只需在结束时 aclose()。
"""

import logging
from typing import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)


class ClosingStream:
    """带清理回调的文本异步迭代器，aclose() 可重复调用"""

    def __init__(self, chunks: AsyncIterator[str], on_close: Callable[[], Awaitable[None]]):
        self._chunks = chunks
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "ClosingStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._chunks.__anext__()
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            await self._on_close()
            logger.debug("上游流已关闭")
