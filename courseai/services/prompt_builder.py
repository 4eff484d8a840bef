"""
Prompt 构建

在有限的上下文窗口内组装最终发送给模型的系统提示词与用户 prompt。

优先级（token 预算不足时从后往前舍弃）：
    1. 最近一次用户输入
    2. 历史对话摘要
    3. 最近几条消息（只预留 token，不拼入 prompt）
    4. 检索到的文档片段（按顺序塞入，放不下的跳过）
    5. 工具输出

结果写回最后一条消息：
- latest_system_message：系统提示词
- final_prompt_engineered_message：用户 prompt
"""

import json
import logging
import re
from typing import Literal

from courseai.config import get_settings
from courseai.exceptions import PromptBuildError
from courseai.infra.redis_cache import get_redis_cache
from courseai.infra.tokens import count_tokens
from courseai.schemas.chat import (
    Content,
    ContextWithMetadata,
    Conversation,
    CourseMetadata,
    ImageURL,
    Message,
)
from courseai.services.message_convert import content_text
from courseai.services.prompts import (
    DOCUMENT_FOCUS_PROMPT,
    GUIDED_LEARNING_CITATION_NOTE,
    GUIDED_LEARNING_PROMPT,
    NOT_IN_DOCUMENTS_NOTE,
    POST_PROMPT_TEMPLATE,
    RETRIEVED_DOCUMENTS_TEMPLATE,
    SUMMARY_SYSTEM_PROMPT,
    TOOL_INSTRUCTIONS,
    TOOL_OUTPUTS_PREAMBLE,
)

logger = logging.getLogger(__name__)

BuildPromptMode = Literal["chat", "optimize_prompt"]

_REFERENCES_PATTERN = re.compile(r"References:|Relevant Sources:")
_CONTEXT_SEPARATOR = "---\n"


# ==================== 模式开关 ====================
# 链接参数或课程设置任一开启即生效；
# 额外提示词只在链接开启、课程未开启时追加（课程级设置已写入课程 system_prompt）

def _link(conversation: Conversation):
    return conversation.link_parameters


def is_guided_learning_enabled(conversation: Conversation, course_metadata: CourseMetadata | None) -> bool:
    link = _link(conversation)
    return bool((link and link.guided_learning) or (course_metadata and course_metadata.guided_learning))


def is_documents_only_enabled(conversation: Conversation, course_metadata: CourseMetadata | None) -> bool:
    link = _link(conversation)
    return bool((link and link.documents_only) or (course_metadata and course_metadata.documents_only))


def is_system_prompt_only_enabled(conversation: Conversation, course_metadata: CourseMetadata | None) -> bool:
    link = _link(conversation)
    return bool((link and link.system_prompt_only) or (course_metadata and course_metadata.system_prompt_only))


def _should_append_guided_learning(conversation: Conversation, course_metadata: CourseMetadata | None) -> bool:
    link = _link(conversation)
    return bool(link and link.guided_learning and not (course_metadata and course_metadata.guided_learning))


def _should_append_documents_only(conversation: Conversation, course_metadata: CourseMetadata | None) -> bool:
    link = _link(conversation)
    return bool(link and link.documents_only and not (course_metadata and course_metadata.documents_only))


# ==================== 系统提示词 ====================

def get_system_post_prompt(conversation: Conversation, course_metadata: CourseMetadata | None) -> str:
    """
    检索到文档时追加在系统提示词之后的引用说明

    system_prompt_only 模式下返回空字符串。
    """
    if is_system_prompt_only_enabled(conversation, course_metadata):
        return ""

    guided = is_guided_learning_enabled(conversation, course_metadata)
    documents_only = is_documents_only_enabled(conversation, course_metadata)

    return POST_PROMPT_TEMPLATE.format(
        guided_note=GUIDED_LEARNING_CITATION_NOTE if guided else "",
        fallback_note=NOT_IN_DOCUMENTS_NOTE if not guided and not documents_only else "",
    ).strip()


def get_default_post_prompt() -> str:
    """默认设置（无任何模式开关）下的引用说明"""
    return get_system_post_prompt(Conversation(), CourseMetadata())


async def get_system_prompt(
    conversation: Conversation,
    project_name: str,
    course_metadata: CourseMetadata | None,
) -> str:
    """
    组装系统提示词

    课程自定义提示词（请求体中没有时从 Redis 读取）或默认提示词，
    再按模式追加引导式学习 / 仅文档提示词；有检索文档时追加引用说明。
    """
    settings = get_settings()

    if course_metadata and course_metadata.system_prompt:
        user_defined = course_metadata.system_prompt
    else:
        stored = await get_redis_cache().get_course_metadata(project_name)
        user_defined = stored.system_prompt if stored else None

    system_prompt = user_defined if user_defined is not None else settings.default_system_prompt

    if _should_append_guided_learning(conversation, course_metadata):
        system_prompt += GUIDED_LEARNING_PROMPT
    if _should_append_documents_only(conversation, course_metadata):
        system_prompt += DOCUMENT_FOCUS_PROMPT

    if is_system_prompt_only_enabled(conversation, course_metadata):
        return system_prompt

    contexts = _last_contexts(conversation)
    if not contexts:
        return system_prompt.strip()

    post_prompt = get_system_post_prompt(conversation, course_metadata)
    return "\n\n".join(p for p in (system_prompt, post_prompt) if p and p.strip())


# ==================== 用户 prompt 各部分 ====================

def _last_contexts(conversation: Conversation) -> list[ContextWithMetadata]:
    if not conversation.messages:
        return []
    return conversation.messages[-1].contexts or []


def get_last_user_text_input(conversation: Conversation) -> str:
    """最近一条用户消息的纯文本（不含图片、文件）"""
    for message in reversed(conversation.messages):
        if message.role == "user":
            if isinstance(message.content, str):
                return message.content
            return "\n".join(c.text or "" for c in message.content)
    return ""


def get_recent_convo_tokens(conversation: Conversation, count: int) -> int:
    """最近 count 条消息的 token 数（只统计字符串内容）"""
    return sum(
        count_tokens(m.content) if isinstance(m.content, str) else 0
        for m in conversation.messages[-count:]
    )


def _context_header(index: int, context: ContextWithMetadata) -> str:
    page = f", page: {context.pagenumber}" if context.pagenumber else ""
    return f"{index + 1}: {context.readable_filename}{page}\n{context.text}\n"


def build_query_top_context(conversation: Conversation, token_limit: int = 8000) -> str | None:
    """
    按顺序塞入检索文档，超出预算的文档跳过（后面更短的文档仍可能放入）

    Returns:
        str | None: 以 ---\\n 分隔的文档文本；没有检索结果时返回 None
    """
    contexts = _last_contexts(conversation)
    if not contexts:
        return None

    token_counter = 0
    valid_docs: list[str] = []
    for index, context in enumerate(contexts):
        doc = _context_header(index, context)
        num_tokens = count_tokens(_CONTEXT_SEPARATOR + doc)
        if token_counter + num_tokens <= token_limit:
            token_counter += num_tokens
            valid_docs.append(doc)

    return _CONTEXT_SEPARATOR.join(valid_docs)


def build_tools_output_results(message: Message) -> str:
    """
    工具输出段落

    图片类输出会以 tool_image_url 片段追加到消息内容中，供支持视觉的模型读取。
    """
    if not message.tools:
        return "No tools used."

    tool_msg = TOOL_OUTPUTS_PREAMBLE
    for tool in message.tools:
        output = tool.output
        if output and output.text:
            tool_msg += f"Tool: {tool.readable_name}\nOutput: {output.text}\n"
        elif output and output.image_urls:
            tool_msg += (
                f"Tool: {tool.readable_name}\nOutput: Images were generated by this tool call "
                "and the generated image(s) is/are provided below"
            )
            if isinstance(message.content, str):
                message.content = [Content(type="text", text=message.content)] if message.content else []
            message.content.extend(
                Content(type="tool_image_url", image_url=ImageURL(url=url))
                for url in output.image_urls
            )
        elif output and output.data:
            tool_msg += f"Tool: {tool.readable_name}\nOutput: {json.dumps(output.data)}\n"
        elif tool.error:
            tool_msg += f"Tool: {tool.readable_name}\n{tool.error}\n"

    return tool_msg + "</Tool Outputs>\n"


def _extract_system_messages(conversation: Conversation) -> str:
    texts = []
    for message in conversation.messages:
        if message.role != "system":
            continue
        text = content_text(message.content)
        if text:
            texts.append(text)
    return "\n\n".join(texts)


def _last_assistant_answer(conversation: Conversation) -> str:
    """最近一条助手回复，去掉 References 之后的部分"""
    answer = ""
    for message in reversed(conversation.messages):
        if message.role != "assistant":
            continue
        if isinstance(message.content, str):
            answer = message.content
        elif message.content and message.content[-1].type == "text":
            answer = message.content[-1].text or ""
        break

    match = _REFERENCES_PATTERN.search(answer)
    return answer[: match.start()].strip() if match else answer


# ==================== 入口 ====================

async def build_prompt(
    conversation: Conversation | None,
    project_name: str,
    course_metadata: CourseMetadata | None = None,
    mode: BuildPromptMode = "chat",
    summary: bool = False,
) -> Conversation:
    """
    构建最终 prompt

    Args:
        conversation: 对话（不会被修改，返回副本）
        project_name: 课程（项目）名称，用于读取课程自定义系统提示词
        course_metadata: 请求体中携带的课程元数据
        mode: chat 为正常对话；optimize_prompt 直接使用对话中的系统消息
        summary: 是否为摘要请求（最后一条助手消息将作为用户消息发送）

    Returns:
        Conversation: 最后一条消息已写入系统提示词与 final prompt 的对话副本

    Raises:
        PromptBuildError: 对话为空
    """
    if conversation is None:
        raise PromptBuildError("Conversation is undefined when building prompt.")

    conversation = conversation.model_copy(deep=True)
    if not conversation.messages:
        raise PromptBuildError("Conversation has no messages.")

    settings = get_settings()
    last_message = conversation.messages[-1]

    if mode == "optimize_prompt":
        system_messages = _extract_system_messages(conversation)
        if system_messages and last_message.role == "user":
            last_message.latest_system_message = system_messages
            last_message.final_prompt_engineered_message = (
                last_message.content if isinstance(last_message.content, str) else ""
            )
        return conversation

    remaining = conversation.model.token_limit - settings.prompt_token_reserve
    user_prompt_sections: list[str] = []
    last_user_text = get_last_user_text_input(conversation)

    if summary:
        final_system_prompt = SUMMARY_SYSTEM_PROMPT
        remaining -= count_tokens(final_system_prompt)

        if conversation.summary:
            previous = f"\n<Previous Conversation Summary>\n{conversation.summary}\n</Previous Conversation Summary>"
            user_prompt_sections.append(previous)
            remaining -= count_tokens(previous)

        user_query = f"\n<User Query>\n{last_user_text}\n</User Query>"
        user_prompt_sections.append(user_query)
        remaining -= count_tokens(user_query)

        answer = f"\n<Answer>\n{_last_assistant_answer(conversation)}\n</Answer>"
        user_prompt_sections.append(answer)
        remaining -= count_tokens(answer)
    else:
        final_system_prompt = await get_system_prompt(conversation, project_name, course_metadata)
        remaining -= count_tokens(final_system_prompt)

        user_query = f"\n<User Query>\n{last_user_text}\n</User Query>"
        user_prompt_sections.append(user_query)
        remaining -= count_tokens(user_query)

        if conversation.summary:
            previous = f"\n<Previous Conversation Summary>\n{conversation.summary}\n</Previous Conversation Summary>"
            user_prompt_sections.append(previous)
            remaining -= count_tokens(previous)

        recent_tokens = get_recent_convo_tokens(conversation, settings.recent_history_messages)
        remaining -= recent_tokens

        if _last_contexts(conversation):
            # 再扣一次最近消息，为历史对话留出空间
            top_context = build_query_top_context(conversation, token_limit=remaining - recent_tokens)
            if top_context:
                context_msg = RETRIEVED_DOCUMENTS_TEMPLATE.format(documents=top_context)
                user_prompt_sections.append(context_msg)
                remaining -= count_tokens(context_msg)

        if last_message.tools:
            user_prompt_sections.append(TOOL_INSTRUCTIONS)
            tool_results = build_tools_output_results(last_message)
            user_prompt_sections.append(tool_results)
            remaining -= count_tokens(tool_results)

    if remaining < 0:
        logger.warning(f"Prompt 超出模型上下文预算: model={conversation.model.id}, over_by={-remaining}")

    last_message.final_prompt_engineered_message = "\n\n".join(user_prompt_sections)
    last_message.latest_system_message = final_system_prompt
    if summary:
        # 摘要请求的最后一条是助手消息，按用户消息发送
        last_message.role = "user"

    return conversation
