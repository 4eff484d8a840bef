"""
Prompt 构建单元测试

测试 courseai/services/prompt_builder.py 的功能：
- 系统提示词（课程自定义 / 默认 / 模式开关）
- 检索文档按 token 预算塞入
- 工具输出
- optimize_prompt 与摘要模式
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from courseai.exceptions import PromptBuildError
from courseai.schemas.chat import Conversation, CourseMetadata
from courseai.services.prompt_builder import (
    build_prompt,
    build_query_top_context,
    get_default_post_prompt,
    get_system_post_prompt,
)
from courseai.services.prompts import (
    DEFAULT_SYSTEM_PROMPT,
    GUIDED_LEARNING_CITATION_NOTE,
    GUIDED_LEARNING_PROMPT,
    NOT_IN_DOCUMENTS_NOTE,
    SUMMARY_SYSTEM_PROMPT,
    TOOL_INSTRUCTIONS,
)


def _char_tokens(text):
    """按字符数计 token，便于断言预算"""
    return len(text) if text else 0


def _conversation(last_message: dict, history: list[dict] | None = None, **extra) -> Conversation:
    return Conversation.model_validate({
        "id": "conv-1",
        "model": {"id": "gpt-4o", "tokenLimit": 128000},
        "messages": [*(history or []), last_message],
        **extra,
    })


@pytest.fixture
def mock_cache():
    """Redis 中没有课程元数据"""
    cache = MagicMock()
    cache.get_course_metadata = AsyncMock(return_value=None)
    return cache


@pytest.fixture
def contexts():
    return [
        {"text": "A loop invariant holds before and after each iteration.",
         "readable_filename": "lecture1.pdf", "pagenumber": "3"},
        {"text": "Invariants prove correctness.", "readable_filename": "notes.md"},
    ]


class TestBuildPrompt:
    """测试 build_prompt"""

    @pytest.mark.asyncio
    async def test_empty_conversation_raises(self):
        """测试对话为空时抛出 PromptBuildError"""
        with pytest.raises(PromptBuildError):
            await build_prompt(None, "cs101")
        with pytest.raises(PromptBuildError):
            await build_prompt(Conversation(), "cs101")

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    @patch("courseai.services.prompt_builder.get_redis_cache")
    async def test_default_prompt_with_documents(self, mock_get_cache, _mock_count, mock_cache, contexts):
        """测试默认系统提示词 + 检索文档 + 引用说明"""
        mock_get_cache.return_value = mock_cache
        conversation = _conversation({
            "id": "u1",
            "role": "user",
            "content": "What is a loop invariant?",
            "contexts": contexts,
        })

        result = await build_prompt(conversation, "cs101")

        last = result.messages[-1]
        assert last.latest_system_message.startswith(DEFAULT_SYSTEM_PROMPT)
        assert "<cite>1</cite>" in last.latest_system_message
        assert NOT_IN_DOCUMENTS_NOTE in last.latest_system_message
        assert "<User Query>\nWhat is a loop invariant?\n</User Query>" in last.final_prompt_engineered_message
        assert "<PotentiallyRelevantDocuments>" in last.final_prompt_engineered_message
        assert "1: lecture1.pdf, page: 3\n" in last.final_prompt_engineered_message
        assert "2: notes.md\nInvariants prove correctness." in last.final_prompt_engineered_message
        mock_cache.get_course_metadata.assert_awaited_once_with("cs101")

        # 原对话不被修改
        assert conversation.messages[-1].final_prompt_engineered_message is None

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    @patch("courseai.services.prompt_builder.get_redis_cache")
    async def test_course_system_prompt_without_documents(self, mock_get_cache, _mock_count, mock_cache):
        """测试课程自定义提示词，无检索文档时不追加引用说明"""
        mock_get_cache.return_value = mock_cache
        conversation = _conversation({"id": "u1", "role": "user", "content": "hi"})

        result = await build_prompt(conversation, "cs101", CourseMetadata(system_prompt="Be brief."))

        assert result.messages[-1].latest_system_message == "Be brief."
        mock_cache.get_course_metadata.assert_not_called()

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    @patch("courseai.services.prompt_builder.get_redis_cache")
    async def test_system_prompt_from_redis(self, mock_get_cache, _mock_count, mock_cache):
        """测试请求体未携带课程元数据时从 Redis 读取"""
        mock_cache.get_course_metadata.return_value = CourseMetadata(system_prompt="From redis.")
        mock_get_cache.return_value = mock_cache
        conversation = _conversation({"id": "u1", "role": "user", "content": "hi"})

        result = await build_prompt(conversation, "cs101")

        assert result.messages[-1].latest_system_message == "From redis."

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    @patch("courseai.services.prompt_builder.get_redis_cache")
    async def test_guided_learning_link(self, mock_get_cache, _mock_count, mock_cache, contexts):
        """测试链接开启引导式学习时追加提示词与引用要求"""
        mock_get_cache.return_value = mock_cache
        conversation = _conversation(
            {"id": "u1", "role": "user", "content": "hint please", "contexts": contexts},
            linkParameters={"guidedLearning": True},
        )

        result = await build_prompt(conversation, "cs101")

        system_prompt = result.messages[-1].latest_system_message
        assert GUIDED_LEARNING_PROMPT.strip() in system_prompt
        assert GUIDED_LEARNING_CITATION_NOTE in system_prompt
        assert NOT_IN_DOCUMENTS_NOTE not in system_prompt

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    @patch("courseai.services.prompt_builder.get_redis_cache")
    async def test_system_prompt_only(self, mock_get_cache, _mock_count, mock_cache, contexts):
        """测试 system_prompt_only 模式不追加引用说明"""
        mock_get_cache.return_value = mock_cache
        conversation = _conversation({"id": "u1", "role": "user", "content": "q", "contexts": contexts})

        result = await build_prompt(
            conversation,
            "cs101",
            CourseMetadata(system_prompt="Only this.", systemPromptOnly=True),
        )

        assert result.messages[-1].latest_system_message == "Only this."

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    @patch("courseai.services.prompt_builder.get_redis_cache")
    async def test_tool_outputs(self, mock_get_cache, _mock_count, mock_cache):
        """测试工具输出写入 prompt，图片输出追加到消息内容"""
        mock_get_cache.return_value = mock_cache
        conversation = _conversation({
            "id": "u1",
            "role": "user",
            "content": "weather and a chart",
            "tools": [
                {"readableName": "Weather", "output": {"text": "Sunny"}},
                {"readableName": "Chart", "output": {"imageUrls": ["http://img/chart.png"]}},
                {"readableName": "Broken", "error": "timeout"},
            ],
        })

        result = await build_prompt(conversation, "cs101")

        last = result.messages[-1]
        assert TOOL_INSTRUCTIONS in last.final_prompt_engineered_message
        assert "Tool: Weather\nOutput: Sunny" in last.final_prompt_engineered_message
        assert "Tool: Broken\ntimeout" in last.final_prompt_engineered_message
        assert last.final_prompt_engineered_message.endswith("</Tool Outputs>\n")
        assert last.content[-1].type == "tool_image_url"
        assert last.content[-1].image_url.url == "http://img/chart.png"

    @pytest.mark.asyncio
    async def test_optimize_prompt_mode(self):
        """测试 optimize_prompt 模式直接使用对话中的系统消息"""
        conversation = _conversation(
            {"id": "u1", "role": "user", "content": "make this better"},
            history=[{"id": "s1", "role": "system", "content": "You optimize prompts."}],
        )

        result = await build_prompt(conversation, "cs101", mode="optimize_prompt")

        last = result.messages[-1]
        assert last.latest_system_message == "You optimize prompts."
        assert last.final_prompt_engineered_message == "make this better"

    @pytest.mark.asyncio
    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    async def test_summary_mode(self, _mock_count):
        """测试摘要模式：最后一条助手消息去掉引用后按用户消息发送"""
        conversation = _conversation(
            {"id": "a1", "role": "assistant", "content": "Loops repeat. References: 1. lecture1.pdf"},
            history=[{"id": "u1", "role": "user", "content": "what are loops"}],
            summary="Earlier we covered variables.",
        )

        result = await build_prompt(conversation, "cs101", summary=True)

        last = result.messages[-1]
        assert last.role == "user"
        assert last.latest_system_message == SUMMARY_SYSTEM_PROMPT
        assert "<Answer>\nLoops repeat.\n</Answer>" in last.final_prompt_engineered_message
        assert "<User Query>\nwhat are loops\n</User Query>" in last.final_prompt_engineered_message
        assert "Earlier we covered variables." in last.final_prompt_engineered_message


class TestBuildQueryTopContext:
    """测试检索文档 token 预算"""

    @patch("courseai.services.prompt_builder.count_tokens", side_effect=_char_tokens)
    def test_oversized_document_skipped(self, _mock_count):
        """测试超出预算的文档被跳过，后续较短文档仍可放入"""
        conversation = _conversation({
            "id": "u1",
            "role": "user",
            "content": "q",
            "contexts": [
                {"text": "a" * 10, "readable_filename": "f.pdf"},
                {"text": "b" * 1000, "readable_filename": "f.pdf"},
                {"text": "c" * 10, "readable_filename": "f.pdf"},
            ],
        })

        result = build_query_top_context(conversation, token_limit=100)

        assert result == "1: f.pdf\n" + "a" * 10 + "\n---\n3: f.pdf\n" + "c" * 10 + "\n"

    def test_no_contexts(self):
        """测试没有检索结果时返回 None"""
        conversation = _conversation({"id": "u1", "role": "user", "content": "q"})

        assert build_query_top_context(conversation) is None


class TestPostPrompt:
    """测试引用说明"""

    def test_default_post_prompt(self):
        """测试默认引用说明包含文档外兜底说明"""
        post_prompt = get_default_post_prompt()

        assert "<cite>1, 2, 3</cite>" in post_prompt
        assert NOT_IN_DOCUMENTS_NOTE in post_prompt
        assert GUIDED_LEARNING_CITATION_NOTE not in post_prompt

    def test_documents_only_drops_fallback(self):
        """测试仅文档模式不允许文档外回答"""
        conversation = _conversation(
            {"id": "u1", "role": "user", "content": "q"},
            linkParameters={"documentsOnly": True},
        )

        assert NOT_IN_DOCUMENTS_NOTE not in get_system_post_prompt(conversation, None)

    def test_system_prompt_only_is_empty(self):
        """测试 system_prompt_only 模式返回空字符串"""
        conversation = _conversation({"id": "u1", "role": "user", "content": "q"})

        assert get_system_post_prompt(conversation, CourseMetadata(systemPromptOnly=True)) == ""
