import os
from unittest.mock import MagicMock, patch

import httpx
import pytest
from groq import APIConnectionError, InternalServerError, RateLimitError

from quotaguard.domain.models.common import ErrorKind
from quotaguard.domain.models.errors import ApiCallError
from quotaguard.infrastructure.ai.groq.groq_client import GroqClient

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", GROQ_URL))


@pytest.fixture
def mock_groq_sdk():
    mock_client = MagicMock()
    mock_choice = MagicMock()
    mock_choice.message.content = "Mocked Groq response"
    mock_client.chat.completions.create.return_value = MagicMock(choices=[mock_choice])
    return mock_client


@patch('quotaguard.infrastructure.ai.groq.groq_client.GroqSDKClient')
def test_init_with_api_key(mock_constructor, mock_groq_sdk):
    mock_constructor.return_value = mock_groq_sdk

    client = GroqClient(api_key="test_key", model="llama-test")

    mock_constructor.assert_called_once_with(api_key="test_key")
    assert client.default_model == "llama-test"
    assert client.provider_name == "groq"


@patch('quotaguard.infrastructure.ai.groq.groq_client.GroqSDKClient')
def test_init_without_key_fails(mock_constructor):
    with patch.dict(os.environ, {}, clear=True):
        with pytest.raises(ValueError, match="Groq API key not provided"):
            GroqClient(api_key=None)
    mock_constructor.assert_not_called()


def test_default_model_used_when_none_given(mock_groq_sdk):
    assert GroqClient(client=mock_groq_sdk).default_model == GroqClient.DEFAULT_MODEL


@pytest.mark.asyncio
async def test_generate_content_success(mock_groq_sdk):
    client = GroqClient(client=mock_groq_sdk, model="llama-test")

    text = await client.generate_content("Explain rate limits")

    assert text == "Mocked Groq response"
    call_kwargs = mock_groq_sdk.chat.completions.create.call_args.kwargs
    assert call_kwargs["model"] == "llama-test"
    assert call_kwargs["messages"] == [{"role": "user", "content": "Explain rate limits"}]


@pytest.mark.asyncio
async def test_model_override(mock_groq_sdk):
    client = GroqClient(client=mock_groq_sdk)

    await client.generate_content("hi", model="other-model")

    assert mock_groq_sdk.chat.completions.create.call_args.kwargs["model"] == "other-model"


@pytest.mark.asyncio
async def test_rate_limit_maps_to_quota_error(mock_groq_sdk):
    mock_groq_sdk.chat.completions.create.side_effect = RateLimitError(
        "Rate limit reached", response=_response(429), body=None
    )
    client = GroqClient(client=mock_groq_sdk)

    with pytest.raises(ApiCallError) as exc_info:
        await client.generate_content("hi")

    assert exc_info.value.kind is ErrorKind.QUOTA_EXHAUSTED
    assert exc_info.value.status_code == 429
    assert exc_info.value.provider == "groq"


@pytest.mark.asyncio
async def test_server_error_maps_to_transient(mock_groq_sdk):
    mock_groq_sdk.chat.completions.create.side_effect = InternalServerError(
        "Internal error", response=_response(500), body=None
    )
    client = GroqClient(client=mock_groq_sdk)

    with pytest.raises(ApiCallError) as exc_info:
        await client.generate_content("hi")

    assert exc_info.value.kind is ErrorKind.TRANSIENT
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_connection_error_maps_to_transient(mock_groq_sdk):
    mock_groq_sdk.chat.completions.create.side_effect = APIConnectionError(
        request=httpx.Request("POST", GROQ_URL)
    )

    with pytest.raises(ApiCallError) as exc_info:
        await GroqClient(client=mock_groq_sdk).generate_content("hi")

    assert exc_info.value.kind is ErrorKind.TRANSIENT


@pytest.mark.asyncio
async def test_malformed_response_raises_api_error(mock_groq_sdk):
    mock_groq_sdk.chat.completions.create.return_value = MagicMock(choices=[])

    with pytest.raises(ApiCallError, match="Invalid response structure"):
        await GroqClient(client=mock_groq_sdk).generate_content("hi")
