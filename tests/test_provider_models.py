"""
模型列表单元测试

测试 courseai/services/provider_models.py：
- 内置目录模型与已有开关状态合并
- Ollama / NCSAHosted 按 /api/tags 过滤
- 需要 API key 的提供商
- 用户自配模型的提供商保持原样
"""

import httpx
import pytest
from unittest.mock import MagicMock, patch

from courseai.schemas.providers import LLMProvider, LLMProviders, ProviderModel, ProviderName
from courseai.services.model_catalog import GEMINI_MODEL_IDS
from courseai.services.provider_models import list_provider_models, merge_model_states, refresh_provider

_RealAsyncClient = httpx.AsyncClient


def _mock_transport_client(handler):
    return patch(
        "httpx.AsyncClient",
        side_effect=lambda **kwargs: _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs),
    )


@pytest.fixture
def mock_settings():
    with patch("courseai.services.provider_models.get_settings") as mock_get_settings:
        settings = MagicMock(ollama_server_url="http://ncsa-ollama:11434", openai_api_key=None)
        mock_get_settings.return_value = settings
        yield settings


class TestMergeModelStates:
    """测试模型状态合并"""

    def test_existing_state_kept(self):
        """测试已有模型保持 enabled / default，新模型默认启用"""
        existing = [
            ProviderModel(id="b", enabled=False),
            ProviderModel(id="a", default=True),
            ProviderModel(id="retired"),
        ]

        models = merge_model_states(["a", "b", "c"], existing)

        assert [(m.id, m.enabled, m.default) for m in models] == [
            ("a", True, True),
            ("b", False, False),
            ("c", True, False),
        ]


class TestRefreshProvider:
    """测试单个提供商刷新"""

    @pytest.mark.asyncio
    async def test_gemini_catalog(self, mock_settings):
        """测试配置了 key 的 Gemini 返回目录模型"""
        provider = LLMProvider(provider=ProviderName.GEMINI, enabled=True, api_key="g-key")

        refreshed = await refresh_provider(provider)

        assert [m.id for m in refreshed.models] == list(GEMINI_MODEL_IDS)
        assert provider.models == []

    @pytest.mark.asyncio
    async def test_missing_key_clears_models(self, mock_settings):
        """测试缺少 key 时模型列表为空"""
        provider = LLMProvider(provider=ProviderName.SAMBANOVA, enabled=True, models=[ProviderModel(id="QwQ-32B")])

        refreshed = await refresh_provider(provider)

        assert refreshed.models == []
        assert refreshed.error is None

    @pytest.mark.asyncio
    async def test_openai_falls_back_to_settings_key(self, mock_settings):
        """测试 OpenAI 使用全局 key 时也返回目录模型"""
        mock_settings.openai_api_key = "sk-global"

        refreshed = await refresh_provider(LLMProvider(provider=ProviderName.OPENAI, enabled=True))

        assert refreshed.models[0].id == "gpt-4.1"

    @pytest.mark.asyncio
    async def test_ollama_installed_models(self, mock_settings):
        """测试 Ollama 只返回已下载且受支持的模型"""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [
                {"name": "qwen3:32b", "model": "qwen3:32b"},
                {"name": "my-finetune:latest", "model": "my-finetune:latest"},
                {"name": "llama3.1:8b-instruct-fp16", "model": "llama3.1:8b-instruct-fp16"},
            ]})

        provider = LLMProvider(
            provider=ProviderName.OLLAMA,
            enabled=True,
            base_url="http://ollama:11434",
            models=[ProviderModel(id="qwen3:32b", enabled=False)],
        )

        with _mock_transport_client(handler):
            refreshed = await refresh_provider(provider)

        assert [(m.id, m.enabled) for m in refreshed.models] == [
            ("llama3.1:8b-instruct-fp16", True),
            ("qwen3:32b", False),
        ]

    @pytest.mark.asyncio
    async def test_ollama_error_recorded(self, mock_settings):
        """测试 /api/tags 失败时记录错误并清空模型"""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        provider = LLMProvider(
            provider=ProviderName.NCSA_HOSTED,
            enabled=True,
            models=[ProviderModel(id="qwen3:32b")],
        )

        with _mock_transport_client(handler):
            refreshed = await refresh_provider(provider)

        assert refreshed.models == []
        assert "http://ncsa-ollama:11434" in refreshed.error

    @pytest.mark.asyncio
    async def test_disabled_ollama_not_queried(self, mock_settings):
        """测试未启用的 Ollama 不请求服务器"""
        with patch("courseai.services.provider_models.get_ollama_model_ids") as mock_tags:
            refreshed = await refresh_provider(
                LLMProvider(provider=ProviderName.OLLAMA, enabled=False, base_url="http://ollama:11434")
            )

        assert refreshed.models == []
        mock_tags.assert_not_called()

    @pytest.mark.asyncio
    async def test_user_configured_models_kept(self, mock_settings):
        """测试 Azure 等用户自配模型的提供商保持原样"""
        provider = LLMProvider(
            provider=ProviderName.AZURE,
            enabled=True,
            models=[ProviderModel(id="my-gpt4o-deployment", enabled=False)],
        )

        refreshed = await refresh_provider(provider)

        assert [(m.id, m.enabled) for m in refreshed.models] == [("my-gpt4o-deployment", False)]


class TestListProviderModels:
    """测试全部提供商列表"""

    @pytest.mark.asyncio
    async def test_placeholders_enabled_in_order(self, mock_settings):
        """测试缺失的提供商补全为启用的占位项，顺序与 ProviderName 一致"""
        mock_settings.ollama_server_url = None

        result = await list_provider_models(LLMProviders())

        assert list(result.root) == list(ProviderName)
        assert all(provider.enabled for provider in result.root.values())
        assert result.get(ProviderName.NCSA_HOSTED_VLM).models[0].id == "Qwen/Qwen2.5-VL-72B-Instruct"
