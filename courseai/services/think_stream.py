"""
推理流转换

把上游的"推理 + 正文"事件流转换为带 <think>...</think> 标签的纯文本流，
前端据此折叠展示推理过程。

支持三种输入：
- UI message SSE 流（reasoning-start / reasoning-delta / reasoning-end /
  text-start / text-delta / text-end / error）
- OpenAI / Azure Responses API 流式事件（先映射为 UI 事件）
- Ollama /api/chat NDJSON 流（message.thinking / message.content）

使用示例：
    async for text in ui_message_stream_to_think_text(response.aiter_bytes()):
        yield text
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
DEFAULT_ERROR_TEXT = "An error occurred."


# ==================== SSE 解析 ====================

@dataclass
class SSEEvent:
    """一条完整的 SSE 事件"""
    data: str
    event: str | None = None
    id: str | None = None


class SSEParser:
    """
    增量 SSE 解析器

    - 数据块可在任意位置切分（包括 \\r\\n 中间）
    - 支持 \\n / \\r\\n / \\r 换行
    - 多行 data 以 \\n 拼接，空行触发事件分发
    - 以 : 开头的注释行、无 data 的事件被忽略
    """

    def __init__(self):
        self._buffer = ""
        self._started = False
        self._data_lines: list[str] = []
        self._event_type: str | None = None
        self.last_event_id: str | None = None
        self.retry: int | None = None

    def feed(self, chunk: str) -> list[SSEEvent]:
        """输入一段文本，返回已完整的事件"""
        if not self._started:
            if not chunk:
                return []
            self._started = True
            if chunk.startswith("\ufeff"):
                chunk = chunk[1:]

        self._buffer += chunk
        events: list[SSEEvent] = []

        while self._buffer:
            newline = self._buffer.find("\n")
            carriage = self._buffer.find("\r")
            if newline == -1 and carriage == -1:
                break

            if carriage != -1 and (newline == -1 or carriage < newline):
                if carriage == len(self._buffer) - 1:
                    # 等待下一块确认是否为 \r\n
                    break
                skip = 2 if self._buffer[carriage + 1] == "\n" else 1
                line, self._buffer = self._buffer[:carriage], self._buffer[carriage + skip:]
            else:
                line, self._buffer = self._buffer[:newline], self._buffer[newline + 1:]

            event = self._process_line(line)
            if event is not None:
                events.append(event)

        return events

    def flush(self) -> list[SSEEvent]:
        """流结束：处理残留的 \\r 行尾，未以空行结束的事件按规范丢弃"""
        events: list[SSEEvent] = []
        if self._buffer.endswith("\r"):
            event = self._process_line(self._buffer[:-1])
            if event is not None:
                events.append(event)
        self._buffer = ""
        self._data_lines = []
        self._event_type = None
        return events

    def _process_line(self, line: str) -> SSEEvent | None:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data_lines.append(value)
        elif field == "event":
            self._event_type = value
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> SSEEvent | None:
        data = "\n".join(self._data_lines)
        if not data:
            self._data_lines = []
            self._event_type = None
            return None
        event = SSEEvent(
            data=data,
            event=self._event_type,
            id=self.last_event_id,
        )
        self._data_lines = []
        self._event_type = None
        return event


# ==================== UI 事件 → <think> 文本 ====================

class ThinkTagger:
    """
    UI message 事件 → 带 <think> 标签的文本

    - 第一段非空 reasoning-delta 打开 <think>
    - reasoning-end / text-start / text-delta / error 之前关闭 <think>
    - 没有任何推理内容时不输出标签
    - error 事件输出 \\n{errorText}\\n
    """

    def __init__(self):
        self.is_thinking_open = False
        self.saw_reasoning_delta = False

    def _close_if_open(self) -> str:
        if self.is_thinking_open and self.saw_reasoning_delta:
            self.is_thinking_open = False
            return THINK_CLOSE
        self.is_thinking_open = False
        return ""

    def process(self, event: dict[str, Any]) -> str:
        """处理一个事件，返回需要输出的文本（可能为空）"""
        event_type = event.get("type")

        if event_type == "reasoning-delta":
            delta = event.get("delta") or ""
            if not delta:
                return ""
            output = ""
            if not self.is_thinking_open:
                output = THINK_OPEN
                self.is_thinking_open = True
            self.saw_reasoning_delta = True
            return output + delta

        if event_type in ("reasoning-end", "text-start"):
            return self._close_if_open()

        if event_type == "text-delta":
            return self._close_if_open() + (event.get("delta") or "")

        if event_type == "error":
            error_text = event.get("errorText")
            message = f"\n{error_text}\n" if error_text else f"\n{DEFAULT_ERROR_TEXT}\n"
            return self._close_if_open() + message

        # reasoning-start / text-end / start / finish 等不产生输出
        return ""

    def finish(self) -> str:
        """流结束时关闭未闭合的 <think>"""
        return self._close_if_open()


async def ui_events_to_think_text(events: AsyncIterable[dict[str, Any]]) -> AsyncIterator[str]:
    """UI 事件流 → <think> 文本流；上游出错时先闭合标签再抛出"""
    tagger = ThinkTagger()
    try:
        async for event in events:
            text = tagger.process(event)
            if text:
                yield text
    except Exception:
        closing = tagger.finish()
        if closing:
            yield closing
        raise

    closing = tagger.finish()
    if closing:
        yield closing


async def _parse_ui_message_stream(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[dict[str, Any]]:
    parser = SSEParser()
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def _decode(events: list[SSEEvent]) -> list[dict[str, Any]]:
        payloads = []
        for sse in events:
            try:
                payload = json.loads(sse.data)
            except json.JSONDecodeError:
                # [DONE] 等非 JSON 数据
                continue
            if isinstance(payload, dict):
                payloads.append(payload)
        return payloads

    async for chunk in chunks:
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        for payload in _decode(parser.feed(text)):
            yield payload

    tail = decoder.decode(b"", final=True)
    events = parser.feed(tail) if tail else []
    for payload in _decode(events + parser.flush()):
        yield payload


async def ui_message_stream_to_think_text(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[str]:
    """
    UI message SSE 字节流 → <think> 文本流

    Args:
        chunks: SSE 原始数据块（bytes 或 str），可在任意位置切分

    Yields:
        str: 文本片段
    """
    async for text in ui_events_to_think_text(_parse_ui_message_stream(chunks)):
        yield text


# ==================== Responses API 事件 → UI 事件 ====================

def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


async def responses_events_to_ui_events(events: AsyncIterable[Any]) -> AsyncIterator[dict[str, Any]]:
    """
    OpenAI / Azure Responses 流式事件 → UI message 事件

    多段推理摘要合并在同一个 <think> 块内，以空行分隔。
    """
    async for event in events:
        event_type = _field(event, "type")

        if event_type == "response.reasoning_summary_part.added":
            if _field(event, "summary_index", 0):
                yield {"type": "reasoning-delta", "delta": "\n\n"}
            else:
                yield {"type": "reasoning-start"}
        elif event_type == "response.reasoning_summary_text.delta":
            yield {"type": "reasoning-delta", "delta": _field(event, "delta", "")}
        elif event_type == "response.output_item.done":
            if _field(_field(event, "item"), "type") == "reasoning":
                yield {"type": "reasoning-end"}
        elif event_type == "response.content_part.added":
            if _field(_field(event, "part"), "type") == "output_text":
                yield {"type": "text-start"}
        elif event_type == "response.output_text.delta":
            yield {"type": "text-delta", "delta": _field(event, "delta", "")}
        elif event_type == "response.output_text.done":
            yield {"type": "text-end"}
        elif event_type == "response.failed":
            error = _field(_field(event, "response"), "error")
            yield {"type": "error", "errorText": _field(error, "message")}
        elif event_type == "error":
            yield {"type": "error", "errorText": _field(event, "message")}


# ==================== Ollama NDJSON → <think> 文本 ====================

class OllamaThinkTagger:
    """
    Ollama /api/chat 流式行 → 带 <think> 标签的文本

    message.thinking 打开 <think>，随后第一段 message.content 之前输出 </think>\\n。
    """

    def __init__(self):
        self.is_thinking_open = False
        self.has_started_content = False

    def process_line(self, line: str) -> str:
        """处理一行 NDJSON，无效行返回空字符串"""
        if not line.strip():
            return ""
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"跳过无效的 Ollama 流数据: {line[:100]}")
            return ""

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            return ""

        output = ""
        thinking = message.get("thinking")
        if thinking:
            if not self.is_thinking_open:
                output += THINK_OPEN
                self.is_thinking_open = True
            output += thinking

        content = message.get("content")
        if content:
            if self.is_thinking_open:
                output += THINK_CLOSE + "\n"
                self.is_thinking_open = False
            self.has_started_content = True
            output += content

        return output

    def finish(self) -> str:
        if self.is_thinking_open:
            self.is_thinking_open = False
            return THINK_CLOSE + "\n"
        return ""


async def ollama_lines_to_think_text(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Ollama NDJSON 行流 → <think> 文本流；上游出错时先闭合标签再抛出"""
    tagger = OllamaThinkTagger()
    try:
        async for line in lines:
            text = tagger.process_line(line)
            if text:
                yield text
    except Exception:
        closing = tagger.finish()
        if closing:
            yield closing
        raise

    closing = tagger.finish()
    if closing:
        yield closing


def format_reasoning_answer(reasoning: str | None, text: str) -> str:
    """非流式结果：有推理内容时输出 <think>{reasoning}</think>\\n{text}"""
    if reasoning:
        return f"{THINK_OPEN}{reasoning}{THINK_CLOSE}\n{text}"
    return text
