"""
对话 → 模型消息格式转换

同一份对话需要转换成多种上游格式：
- OpenAI / Azure Chat Completions：带图片的多段 content
- OpenAI 兼容（vLLM / SambaNova / OpenAICompatible）：单段文本用字符串，多段用数组
- 纯文本（Ollama / Bedrock / Gemini）：只保留文本
- Responses API / Bedrock Converse / Gemini contents：在上述结果上再做一次适配

系统消息取自最后一条带 latest_system_message 的消息；
最后一条用户消息使用 prompt 构建后的 final_prompt_engineered_message。
"""

import math
from typing import Any

from courseai.schemas.chat import Content, Conversation, Message

IMAGE_TYPES = ("image_url", "tool_image_url")


def latest_system_message(conversation: Conversation) -> str | None:
    """最后一条带 latest_system_message 的消息中的系统提示词"""
    for message in reversed(conversation.messages):
        if message.latest_system_message is not None:
            return message.latest_system_message
    return None


def file_placeholder(content: Content) -> str:
    """文件内容的文本占位：[File: name (type, 12KB)]"""
    name = content.file_name or "unknown"
    file_type = content.file_type or "unknown type"
    size = f"{math.floor(content.file_size / 1024 + 0.5)}KB" if content.file_size else "unknown size"
    return f"[File: {name} ({file_type}, {size})]"


def content_text(content: str | list[Content]) -> str:
    """仅取文本片段，换行拼接"""
    if isinstance(content, str):
        return content
    return "\n".join(c.text or "" for c in content if c.type == "text")


def _image_url(content: Content) -> str | None:
    if content.type in IMAGE_TYPES and content.image_url and content.image_url.url:
        return content.image_url.url
    return None


def _last_user_index(conversation: Conversation) -> int | None:
    for index in range(len(conversation.messages) - 1, -1, -1):
        if conversation.messages[index].role == "user":
            return index
    return None


def _is_last_user_message(conversation: Conversation, index: int, message: Message) -> bool:
    """按 id 匹配最后一条用户消息；id 为空时按位置匹配"""
    if message.role != "user":
        return False
    last_index = _last_user_index(conversation)
    if last_index is None:
        return False
    last_id = conversation.messages[last_index].id
    if last_id:
        return message.id == last_id
    return index == last_index


def _is_final_user_message(conversation: Conversation, index: int, message: Message) -> bool:
    return index == len(conversation.messages) - 1 and message.role == "user"


# ==================== OpenAI / Azure ====================

def conversation_to_model_messages(conversation: Conversation) -> list[dict[str, Any]]:
    """
    转换为 Chat Completions 消息（支持图片）

    - 最后一条用户消息（按 id，缺失时按位置）有 final prompt 时只发送 final prompt 文本
    - 数组内容：文本与文件占位合并为一段文本，图片逐个追加
    - 没有任何片段的消息 content 为空字符串
    """
    messages: list[dict[str, Any]] = []

    system_prompt = latest_system_message(conversation)
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for index, message in enumerate(conversation.messages):
        if message.role == "system":
            continue

        is_last_user = _is_last_user_message(conversation, index, message)
        parts: list[dict[str, Any]] = []

        if is_last_user and message.final_prompt_engineered_message:
            parts.append({"type": "text", "text": message.final_prompt_engineered_message})
        elif isinstance(message.content, str):
            parts.append({"type": "text", "text": message.content})
        else:
            texts = []
            for c in message.content:
                if c.type == "text" and c.text:
                    texts.append(c.text)
                elif c.type == "file":
                    texts.append(file_placeholder(c))
            if texts:
                parts.append({"type": "text", "text": "\n".join(texts)})
            for c in message.content:
                url = _image_url(c)
                if url:
                    parts.append({"type": "image_url", "image_url": {"url": url}})

        messages.append({"role": message.role, "content": parts or ""})

    return messages


# ==================== OpenAI 兼容 ====================

def conversation_to_compatible_messages(conversation: Conversation) -> list[dict[str, Any]]:
    """
    转换为 OpenAI 兼容服务的消息

    只有对话的最后一条消息是用户消息时才替换为 final prompt。
    单段文本使用字符串，包含图片或多段时使用数组；空的单段文本消息被丢弃。
    """
    messages: list[dict[str, Any]] = []

    system_prompt = latest_system_message(conversation)
    if system_prompt is not None:
        messages.append({"role": "system", "content": system_prompt})

    for index, message in enumerate(conversation.messages):
        if message.role == "system":
            continue

        is_final_user = _is_final_user_message(conversation, index, message)

        if isinstance(message.content, str):
            content = message.content
            if is_final_user and message.final_prompt_engineered_message:
                content = message.final_prompt_engineered_message
            messages.append({"role": message.role, "content": content})
            continue

        parts: list[dict[str, Any]] = []
        final_prompt_used = False
        for c in message.content:
            if c.type == "text":
                if is_final_user and message.final_prompt_engineered_message:
                    # final prompt 已包含用户输入，只放一次
                    if final_prompt_used:
                        continue
                    text = message.final_prompt_engineered_message
                    final_prompt_used = True
                else:
                    text = c.text or ""
                if text:
                    parts.append({"type": "text", "text": text})
            elif c.type in IMAGE_TYPES:
                url = _image_url(c)
                if url:
                    parts.append({"type": "image_url", "image_url": {"url": url}})
            elif c.type == "file":
                parts.append({"type": "text", "text": file_placeholder(c)})

        has_images = any(p["type"] == "image_url" for p in parts)
        if has_images or len(parts) > 1:
            messages.append({"role": message.role, "content": parts})
        else:
            text = parts[0]["text"] if parts else ""
            if text:
                messages.append({"role": message.role, "content": text})

    return messages


# ==================== 纯文本 ====================

def conversation_to_text_messages(
    conversation: Conversation,
    require_final_prompt: bool = False,
) -> list[dict[str, str]]:
    """
    转换为纯文本消息（Ollama / Bedrock / Gemini）

    Args:
        conversation: 对话
        require_final_prompt: 为 True 时最后一条用户消息只使用 final prompt（缺失时为空字符串），
            否则缺失 final prompt 时回退到原始文本
    """
    messages: list[dict[str, str]] = []

    system_prompt = latest_system_message(conversation)
    if system_prompt is not None:
        messages.append({"role": "system", "content": system_prompt})

    for index, message in enumerate(conversation.messages):
        if message.role == "system":
            continue

        if _is_final_user_message(conversation, index, message) and (
            require_final_prompt or message.final_prompt_engineered_message
        ):
            content = message.final_prompt_engineered_message or ""
        else:
            content = content_text(message.content)

        role = "user" if message.role == "user" else "assistant"
        messages.append({"role": role, "content": content})

    return messages


# ==================== 上游格式适配 ====================

def to_responses_input(messages: list[dict[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
    """
    Chat Completions 消息 → Responses API (instructions, input)

    系统消息作为 instructions；用户内容转为 input_text / input_image，助手内容转为 output_text。
    """
    instructions: str | None = None
    items: list[dict[str, Any]] = []

    for message in messages:
        role = message["role"]
        content = message["content"]
        if role == "system":
            instructions = content if isinstance(content, str) else None
            continue

        text_type = "output_text" if role == "assistant" else "input_text"
        if isinstance(content, str):
            parts = [{"type": text_type, "text": content}]
        else:
            parts = []
            for part in content:
                if part["type"] == "text":
                    parts.append({"type": text_type, "text": part["text"]})
                elif part["type"] == "image_url" and role != "assistant":
                    parts.append({"type": "input_image", "image_url": part["image_url"]["url"]})
        items.append({"role": role, "content": parts})

    return instructions, items


def to_bedrock_messages(messages: list[dict[str, str]]) -> tuple[list[dict[str, str]], list[dict[str, Any]]]:
    """
    纯文本消息 → Bedrock Converse (system, messages)

    Converse 要求首条为 user、角色交替且文本非空：
    空文本被跳过，相邻同角色消息合并，开头的 assistant 消息被丢弃。
    """
    system: list[dict[str, str]] = []
    converted: list[dict[str, Any]] = []

    for message in messages:
        text = message["content"]
        if message["role"] == "system":
            if text:
                system.append({"text": text})
            continue
        if not text:
            continue
        if not converted and message["role"] != "user":
            continue
        if converted and converted[-1]["role"] == message["role"]:
            converted[-1]["content"].append({"text": text})
        else:
            converted.append({"role": message["role"], "content": [{"text": text}]})

    return system, converted


def to_gemini_contents(messages: list[dict[str, str]]) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
    """纯文本消息 → Gemini (systemInstruction, contents)，assistant 角色映射为 model"""
    system_instruction = None
    contents: list[dict[str, Any]] = []

    for message in messages:
        if message["role"] == "system":
            if message["content"]:
                system_instruction = {"parts": [{"text": message["content"]}]}
            continue
        role = "model" if message["role"] == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": message["content"]}]})

    return system_instruction, contents
