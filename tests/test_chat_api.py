"""
HTTP 接口测试

使用 FastAPI TestClient 测试：
- POST /api/allNewRoutingChat（流式 / 非流式 / 错误映射）
- GET /api/models
- GET /healthz
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from courseai.exceptions import ModelNotFoundError, ProviderConnectionError, UnsupportedProviderError
from courseai.infra.streaming import ClosingStream
from courseai.main import app
from courseai.schemas.providers import LLMProviders, ProviderName


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def chat_payload():
    return {
        "conversation": {
            "id": "conv-1",
            "model": {"id": "gpt-4o", "tokenLimit": 128000},
            "messages": [{"id": "u1", "role": "user", "content": "hi"}],
        },
        "course_name": "cs101",
        "stream": False,
    }


async def _chunks(*items, error: Exception | None = None):
    for item in items:
        yield item
    if error is not None:
        raise error


class TestChatEndpoint:
    """测试对话接口"""

    @patch("courseai.api.routes.chat.handle_chat", new_callable=AsyncMock)
    def test_non_stream(self, mock_handle, client, chat_payload):
        """测试非流式返回 choices 格式"""
        mock_handle.return_value = "Hello!"

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.status_code == 200
        assert response.json() == {"choices": [{"message": {"content": "Hello!"}}]}
        assert "X-Request-ID" in response.headers

    @patch("courseai.api.routes.chat.handle_chat", new_callable=AsyncMock)
    def test_stream(self, mock_handle, client, chat_payload):
        """测试流式返回纯文本，推理内容带 <think> 标签"""
        mock_handle.return_value = _chunks("<think>", "hmm", "</think>", "Answer")
        chat_payload["stream"] = True

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == "<think>hmm</think>Answer"

    @patch("courseai.api.routes.chat.handle_chat", new_callable=AsyncMock)
    def test_stream_error_written_inline(self, mock_handle, client, chat_payload):
        """测试流式输出中途出错时错误信息写入流"""
        mock_handle.return_value = _chunks("partial", error=ProviderConnectionError("connection lost"))
        chat_payload["stream"] = True

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.status_code == 200
        assert response.text == "partial\nconnection lost\n"

    @patch("courseai.api.routes.chat.handle_chat", new_callable=AsyncMock)
    def test_stream_releases_upstream(self, mock_handle, client, chat_payload):
        """测试流式响应结束后释放上游连接"""
        on_close = AsyncMock()
        mock_handle.return_value = ClosingStream(_chunks("a", "b"), on_close)
        chat_payload["stream"] = True

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.text == "ab"
        on_close.assert_awaited_once()

    @patch("courseai.api.routes.chat.handle_chat", new_callable=AsyncMock)
    def test_model_not_found(self, mock_handle, client, chat_payload):
        """测试模型不存在映射为 404"""
        mock_handle.side_effect = ModelNotFoundError("Ollama model 'x' not found on server.")

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.status_code == 404
        assert response.json() == {
            "detail": "Ollama model 'x' not found on server.",
            "code": "MODEL_NOT_FOUND",
        }

    @patch("courseai.api.routes.chat.handle_chat", new_callable=AsyncMock)
    def test_unsupported_model(self, mock_handle, client, chat_payload):
        """测试不支持的模型映射为 400"""
        mock_handle.side_effect = UnsupportedProviderError("Model x is not supported.")

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.status_code == 400
        assert response.json()["code"] == "UNSUPPORTED_MODEL"

    def test_validation_error(self, client, chat_payload):
        """测试请求体校验失败返回 VALIDATION_ERROR"""
        chat_payload["mode"] = "not-a-mode"

        response = client.post("/api/allNewRoutingChat", json=chat_payload)

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestModelsEndpoint:
    """测试模型提供商接口"""

    def test_missing_project_name(self, client):
        """测试缺少 project_name"""
        response = client.get("/api/models")

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_PROJECT_NAME"

    @patch("courseai.services.provider_models.get_settings")
    @patch("courseai.api.routes.models.get_redis_cache")
    def test_providers_masked(self, mock_get_cache, mock_get_settings, client):
        """测试返回全部提供商且密钥被清空"""
        cache = MagicMock()
        cache.get_llm_providers = AsyncMock(return_value=LLMProviders.model_validate({
            "OpenAI": {"enabled": True, "apiKey": "sk-secret", "models": [{"id": "gpt-4o", "enabled": False}]},
            "Gemini": {"enabled": True, "apiKey": "g-key"},
            "Bedrock": {"enabled": True, "accessKeyId": "AKIA", "secretAccessKey": "shh", "region": "us-west-2"},
        }))
        mock_get_cache.return_value = cache
        mock_get_settings.return_value = MagicMock(ollama_server_url=None, openai_api_key=None)

        response = client.get("/api/models", params={"project_name": "cs101"})

        assert response.status_code == 200
        data = response.json()
        assert data["OpenAI"]["enabled"] is True
        assert data["OpenAI"]["apiKey"] is None
        openai_models = {m["id"]: m for m in data["OpenAI"]["models"]}
        assert data["OpenAI"]["models"][0]["id"] == "gpt-4.1"
        assert openai_models["gpt-4o"]["enabled"] is False
        assert openai_models["gpt-5"]["enabled"] is True
        assert data["Gemini"]["models"][0]["id"] == "gemini-2.5-pro-exp-03-25"
        assert data["Gemini"]["apiKey"] is None
        assert data["Bedrock"]["accessKeyId"] is None
        assert data["Bedrock"]["secretAccessKey"] is None
        assert data["Bedrock"]["region"] == "us-west-2"
        assert data["Ollama"]["enabled"] is True
        assert data["Ollama"]["models"] == []
        assert data["NCSAHosted"]["error"] == "OLLAMA_SERVER_URL is not configured"
        assert list(data) == [name.value for name in ProviderName]


class TestHealth:
    """测试健康检查"""

    def test_healthz(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
