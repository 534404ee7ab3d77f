"""Unit tests for backend adapters, using httpx.MockTransport instead of the network."""

import json

import httpx
import pytest

from epub_translator.core.llm.base import estimate_tokens
from epub_translator.core.llm.exceptions import (
    LLMAuthenticationError, LLMConnectionError, LLMRateLimitOrServerError,
    LLMTimeoutError, MalformedResponseError,
)
from epub_translator.core.llm.factory import create_llm_provider
from epub_translator.core.llm.providers import (
    CustomEndpointProvider, DemoProvider, OpenRouterProvider, ZhipuProvider,
)


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def chat_response(content, usage=None):
    body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        body["usage"] = usage
    return httpx.Response(200, json=body)


class TestZhipuProvider:
    """Test the OpenAI-style Zhipu adapter."""

    @pytest.mark.asyncio
    async def test_successful_batch(self):
        """Request shape and response parsing for a batch translation."""
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return chat_response(" 你好\n\n再见 ", usage={"prompt_tokens": 12, "completion_tokens": 4})

        provider = ZhipuProvider(api_key="secret", model="glm-test",
                                 base_url="https://gateway.test/v4", client=mock_client(handler))
        response = await provider.translate_batch("Hello\n\nGoodbye", "en", "zh", expected_count=2)

        assert response.content == "你好\n\n再见"
        assert response.prompt_tokens == 12
        assert response.completion_tokens == 4
        assert not response.estimated
        assert seen["url"] == "https://gateway.test/v4/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["model"] == "glm-test"
        assert seen["body"]["stream"] is False
        assert seen["body"]["messages"][0]["role"] == "system"
        assert "Hello\n\nGoodbye" in seen["body"]["messages"][-1]["content"]
        assert provider.request_count == 1

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self):
        provider = ZhipuProvider(api_key="k", client=mock_client(lambda r: chat_response("你好")))

        response = await provider.translate_single("Hello", "en", "zh")

        assert response.estimated
        assert response.completion_tokens == estimate_tokens("你好")

    @pytest.mark.asyncio
    async def test_401_is_authentication_error(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "invalid api key"}})

        provider = ZhipuProvider(api_key="bad", client=mock_client(handler))

        with pytest.raises(LLMAuthenticationError) as exc_info:
            await provider.translate_batch("Hello", "en", "zh", 1)
        assert exc_info.value.recoverable is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_other_status_is_rate_limit_or_server_error(self, status):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "overloaded"}})

        provider = ZhipuProvider(api_key="k", client=mock_client(handler))

        with pytest.raises(LLMRateLimitOrServerError) as exc_info:
            await provider.translate_batch("Hello", "en", "zh", 1)
        assert exc_info.value.status_code == status
        assert "overloaded" in exc_info.value.message
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = ZhipuProvider(api_key="k", client=mock_client(handler))

        with pytest.raises(LLMTimeoutError):
            await provider.translate_batch("Hello", "en", "zh", 1, timeout=1)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = ZhipuProvider(api_key="k", client=mock_client(handler))

        with pytest.raises(LLMConnectionError):
            await provider.translate_batch("Hello", "en", "zh", 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="<html>gateway error</html>"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
        httpx.Response(200, json=["not", "an", "object"]),
    ])
    async def test_malformed_responses(self, response):
        provider = ZhipuProvider(api_key="k", client=mock_client(lambda r: response))

        with pytest.raises(MalformedResponseError):
            await provider.translate_batch("Hello", "en", "zh", 1)

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        client = mock_client(lambda r: chat_response("你好"))
        provider = ZhipuProvider(api_key="k", client=client)

        await provider.close()

        assert not client.is_closed


class TestOpenRouterProvider:
    """Test the OpenRouter adapter."""

    @pytest.mark.asyncio
    async def test_identification_headers(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            seen["url"] = str(request.url)
            return chat_response("你好")

        provider = OpenRouterProvider(api_key="or-key", api_url="https://router.test/v1/chat/completions",
                                      client=mock_client(handler))
        await provider.translate_batch("Hello", "en", "zh", 1)

        assert seen["url"] == "https://router.test/v1/chat/completions"
        assert seen["authorization"] == "Bearer or-key"
        assert seen["http-referer"] == OpenRouterProvider.REFERER
        assert seen["x-title"] == OpenRouterProvider.TITLE


class TestCustomEndpointProvider:
    """Test the fixed-contract custom endpoint adapter."""

    @pytest.mark.asyncio
    async def test_payload_and_response(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"translated_text": "你好\n\n再见"})

        provider = CustomEndpointProvider("https://mt.test/translate", client=mock_client(handler))
        response = await provider.translate_batch("Hello\n\nBye", "en", "zh", expected_count=2)

        assert response.content == "你好\n\n再见"
        assert response.estimated
        assert seen["body"] == {
            "text": "Hello\n\nBye", "source_lang": "en", "target_lang": "zh", "expected_count": 2,
        }
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_optional_bearer_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"translated_text": "你好"})

        provider = CustomEndpointProvider("https://mt.test/translate", api_key="tok",
                                          client=mock_client(handler))
        await provider.translate_single("Hello", "en", "zh")

        assert seen["auth"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_missing_translated_text(self):
        provider = CustomEndpointProvider(
            "https://mt.test/translate",
            client=mock_client(lambda r: httpx.Response(200, json={"result": "你好"})),
        )

        with pytest.raises(MalformedResponseError):
            await provider.translate_single("Hello", "en", "zh")

    def test_requires_endpoint(self):
        with pytest.raises(ValueError):
            CustomEndpointProvider("")


class TestDemoProvider:
    """Test the offline demo provider."""

    @pytest.mark.asyncio
    async def test_tags_every_paragraph(self):
        provider = DemoProvider()

        response = await provider.translate_batch("Hello.\n\nGoodbye.", "en", "zh", 2)

        assert response.content == "[English→Chinese] Hello.\n\n[English→Chinese] Goodbye."
        assert provider.request_count == 1

    @pytest.mark.asyncio
    async def test_single_fragment(self):
        provider = DemoProvider()

        response = await provider.translate_single("Bonjour", "fr", "ja")

        assert response.content == "[French→Japanese] Bonjour"


class TestFactory:
    """Test create_llm_provider."""

    def test_demo(self):
        assert isinstance(create_llm_provider("demo"), DemoProvider)

    def test_zhipu_with_key(self):
        provider = create_llm_provider("zhipu", api_key="k", model="glm-x")
        assert isinstance(provider, ZhipuProvider)
        assert provider.model == "glm-x"

    def test_openrouter_with_key(self):
        assert isinstance(create_llm_provider("openrouter", api_key="k"), OpenRouterProvider)

    def test_custom_with_endpoint(self):
        provider = create_llm_provider("custom", api_endpoint="https://mt.test/translate")
        assert isinstance(provider, CustomEndpointProvider)

    def test_missing_key(self, monkeypatch):
        monkeypatch.setattr("epub_translator.core.llm.factory.ZHIPU_API_KEY", "")
        with pytest.raises(ValueError):
            create_llm_provider("zhipu")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_llm_provider("ollama")


class TestEstimateTokens:
    """Test the usage estimate used when a backend reports none."""

    def test_empty(self):
        assert estimate_tokens("") == 0

    def test_latin_text(self):
        assert estimate_tokens("abcdefgh") == 2

    def test_cjk_text(self):
        assert estimate_tokens("你好你") == 2
