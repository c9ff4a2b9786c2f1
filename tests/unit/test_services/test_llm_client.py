"""Tests for services/llm_client.py."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import ollama
import pytest

from storyboard.services.llm_client import create_ollama_client, generate_text
from storyboard.settings import Settings
from storyboard.utils.exceptions import LLMConnectionError, LLMError


def chat_response(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        message=SimpleNamespace(content=content), prompt_eval_count=12, eval_count=34
    )


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock(spec=ollama.AsyncClient)
    client.chat = AsyncMock(return_value=chat_response("A calm harbor at dawn."))
    return client


class TestCreateOllamaClient:
    """Tests for create_ollama_client."""

    def test_returns_async_client(self):
        """Test an AsyncClient is built from settings."""
        client = create_ollama_client(Settings(ollama_url="http://ollama.local:11434"))
        assert isinstance(client, ollama.AsyncClient)


class TestGenerateText:
    """Tests for generate_text."""

    @pytest.mark.asyncio
    async def test_returns_content(self, mock_client):
        """Test the message content is returned."""
        result = await generate_text(mock_client, "qwen3:8b", "rewrite this", temperature=0.3)

        assert result == "A calm harbor at dawn."
        kwargs = mock_client.chat.await_args.kwargs
        assert kwargs["model"] == "qwen3:8b"
        assert kwargs["messages"] == [{"role": "user", "content": "rewrite this"}]
        assert kwargs["options"] == {"temperature": 0.3}

    @pytest.mark.asyncio
    async def test_system_prompt_prepended(self, mock_client):
        """Test a system prompt becomes the first message."""
        await generate_text(mock_client, "m", "user text", system_prompt="be brief")

        messages = mock_client.chat.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}

    @pytest.mark.asyncio
    async def test_strips_thinking(self, mock_client):
        """Test thinking blocks are removed from the response."""
        mock_client.chat.return_value = chat_response("<think>hmm</think>\nFinal prompt")
        assert await generate_text(mock_client, "m", "p") == "Final prompt"

    @pytest.mark.asyncio
    async def test_empty_content(self, mock_client):
        """Test a missing content field yields an empty string."""
        mock_client.chat.return_value = chat_response(None)
        assert await generate_text(mock_client, "m", "p") == ""

    @pytest.mark.asyncio
    async def test_response_error_maps_to_llm_error(self, mock_client):
        """Test Ollama response errors become LLMError."""
        mock_client.chat.side_effect = ollama.ResponseError("model not found", 404)

        with pytest.raises(LLMError, match="model not found") as exc_info:
            await generate_text(mock_client, "missing", "p")
        assert not isinstance(exc_info.value, LLMConnectionError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            ConnectionError("reset"),
        ],
    )
    async def test_transport_errors_map_to_connection_error(self, mock_client, error):
        """Test transport failures become LLMConnectionError."""
        mock_client.chat.side_effect = error

        with pytest.raises(LLMConnectionError):
            await generate_text(mock_client, "m", "p")
