"""
日志上下文单元测试

测试 courseai/infra/logging.py：
- JSON / 控制台格式都带上请求 ID、课程与路由后的模型
- 新请求开始时清空上一次请求的上下文
"""

import json
import logging

import pytest

from courseai.infra.logging import (
    ConsoleFormatter,
    JSONFormatter,
    RequestTimer,
    reset_request_context,
    set_course_name,
    set_model_route,
)


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("courseai.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    reset_request_context("")
    yield
    reset_request_context("")


class TestRequestContext:
    """测试日志中的请求上下文"""

    def test_json_includes_route(self):
        """测试 JSON 日志包含课程与模型路由"""
        reset_request_context("req-123")
        set_course_name("ECE120")
        set_model_route("llama3.1:70b", "Ollama")

        data = json.loads(JSONFormatter().format(_record(attempt=2)))

        assert data["message"] == "hello"
        assert data["request_id"] == "req-123"
        assert data["course_name"] == "ECE120"
        assert data["model_id"] == "llama3.1:70b"
        assert data["provider"] == "Ollama"
        assert data["extra"] == {"attempt": 2}

    def test_json_without_context(self):
        """测试无上下文时不输出空字段"""
        data = json.loads(JSONFormatter().format(_record()))

        assert "request_id" not in data
        assert "course_name" not in data
        assert "model_id" not in data

    def test_console_includes_route(self):
        """测试控制台日志包含 <model@provider>"""
        reset_request_context("abcdef0123456789")
        set_model_route("gpt-4o", "OpenAI")

        line = ConsoleFormatter().format(_record())

        assert "[abcdef01]" in line
        assert "<gpt-4o@OpenAI>" in line
        assert line.endswith("courseai.test - hello")

    def test_reset_clears_previous_request(self):
        """测试新请求清空课程与模型"""
        reset_request_context("first")
        set_course_name("ECE120")
        set_model_route("gpt-4o", "OpenAI")

        reset_request_context("second")
        data = json.loads(JSONFormatter().format(_record()))

        assert data["request_id"] == "second"
        assert "course_name" not in data
        assert "model_id" not in data

    def test_clear_route(self):
        """测试传入空值清除模型路由"""
        set_model_route("gpt-4o", "OpenAI")
        set_model_route(None, None)

        data = json.loads(JSONFormatter().format(_record()))
        assert "model_id" not in data


class TestRequestTimer:
    """测试分阶段计时"""

    def test_metrics_include_marks(self):
        timer = RequestTimer()
        timer.mark("load_providers")
        metrics = timer.get_metrics()

        assert "total_ms" in metrics
        assert metrics["load_providers_ms"] >= 0
