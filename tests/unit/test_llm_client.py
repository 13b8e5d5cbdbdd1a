"""Unit tests for LLMClient and LLMIntentProvider."""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from saynote.interpreter.prompts import build_intent_messages, render_document
from saynote.models.blocks import heading, page_link, paragraph
from saynote.models.config import LLMConfig
from saynote.models.intent_payload import IntentAction
from saynote.services.exceptions import InterpretationError
from saynote.services.llm_client import LLMClient, LLMIntentProvider, extract_json_text


def create_mock_response(data):
    """Create a mock HTTP response returning ``data`` as JSON."""
    response = Mock()
    response.raise_for_status = Mock()
    response.json = Mock(return_value=data)
    return response


def chat_answer(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestExtractJsonText:
    """Test cleanup of model answers."""

    def test_plain_json(self):
        """Test that clean JSON is returned unchanged."""
        assert extract_json_text('{"action": "UNDO"}') == '{"action": "UNDO"}'

    def test_code_fence(self):
        """Test that Markdown fences are stripped."""
        assert extract_json_text('```json\n{"action": "UNDO"}\n```') == '{"action": "UNDO"}'

    def test_leading_and_trailing_prose(self):
        """Test that prose around the object is dropped."""
        text = 'Here is the result: {"action": "REDO"} Hope that helps!'
        assert extract_json_text(text) == '{"action": "REDO"}'


class TestLLMClient:
    """Test LLMClient class."""

    @pytest.fixture
    def llm_config(self):
        """Create test LLM configuration."""
        return LLMConfig(
            endpoint="https://api.test.com/v1",
            api_key="test-key",
            model="test-model",
            max_retries=2,
        )

    @pytest.fixture
    def messages(self):
        return [{"role": "user", "content": "undo"}]

    def test_timeout_uses_config(self, llm_config):
        """Test that the read timeout comes from the configuration."""
        client = LLMClient(llm_config)
        assert client.timeout.read == llm_config.timeout_seconds

    @pytest.mark.asyncio
    async def test_complete_returns_content(self, llm_config, messages):
        """Test a successful chat completion."""
        mock_client = AsyncMock()
        mock_client.post.return_value = create_mock_response(chat_answer('{"action": "UNDO"}'))

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            content = await LLMClient(llm_config).complete(messages, request_id="test")

        assert content == '{"action": "UNDO"}'
        args, kwargs = mock_client.post.call_args
        assert args[0] == "https://api.test.com/v1/chat/completions"
        assert kwargs["headers"] == {"Authorization": "Bearer test-key"}
        assert kwargs["json"]["model"] == "test-model"
        assert kwargs["json"]["response_format"] == {"type": "json_object"}
        assert kwargs["json"]["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_complete_without_api_key(self, messages):
        """Test that local servers get no Authorization header."""
        config = LLMConfig(endpoint="http://localhost:11434/v1", model="llama3")
        mock_client = AsyncMock()
        mock_client.post.return_value = create_mock_response(chat_answer("{}"))

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            await LLMClient(config).complete(messages, json_mode=False)

        _, kwargs = mock_client.post.call_args
        assert kwargs["headers"] == {}
        assert "response_format" not in kwargs["json"]

    @pytest.mark.asyncio
    async def test_ollama_native_response(self, llm_config, messages):
        """Test that Ollama's native response shape is accepted."""
        mock_client = AsyncMock()
        mock_client.post.return_value = create_mock_response({"message": {"content": "hi"}})

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            assert await LLMClient(llm_config).complete(messages) == "hi"

    @pytest.mark.asyncio
    async def test_missing_content_raises(self, llm_config, messages):
        """Test that a response without a message raises ValueError."""
        mock_client = AsyncMock()
        mock_client.post.return_value = create_mock_response({"choices": []})

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            with pytest.raises(ValueError, match="no message content"):
                await LLMClient(llm_config).complete(messages)

    @pytest.mark.asyncio
    async def test_retries_on_connect_error(self, llm_config, messages):
        """Test that transient network errors are retried."""
        mock_client = AsyncMock()
        mock_client.post.side_effect = [
            httpx.ConnectError("Connection refused"),
            create_mock_response(chat_answer("ok")),
        ]

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            with patch('asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
                content = await LLMClient(llm_config).complete(messages, retry_delay=0.5)

        assert content == "ok"
        assert mock_client.post.call_count == 2
        mock_sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, llm_config, messages):
        """Test that the error propagates once retries are exhausted."""
        mock_client = AsyncMock()
        mock_client.post.side_effect = httpx.ReadTimeout("Read timed out")

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            with patch('asyncio.sleep', new_callable=AsyncMock):
                with pytest.raises(httpx.ReadTimeout):
                    await LLMClient(llm_config).complete(messages)

        # One attempt plus two retries
        assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_http_status_error_not_retried(self, llm_config, messages):
        """Test that HTTP errors are raised immediately."""
        response = create_mock_response({})
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Unauthorized", request=Mock(), response=Mock(status_code=401)
        )
        mock_client = AsyncMock()
        mock_client.post.return_value = response

        with patch('httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = mock_client
            with pytest.raises(httpx.HTTPStatusError):
                await LLMClient(llm_config).complete(messages)

        assert mock_client.post.call_count == 1


class TestLLMIntentProvider:
    """Test LLMIntentProvider."""

    @pytest.fixture
    def client(self):
        """Mock LLM client."""
        mock = Mock(spec=LLMClient)
        mock.complete = AsyncMock()
        return mock

    @pytest.fixture
    def document(self):
        return (heading("Shopping", block_id="h1"), paragraph("milk", block_id="p1"))

    @pytest.mark.asyncio
    async def test_fenced_answer(self, client, document):
        """Test a fenced JSON answer."""
        client.complete.return_value = '```json\n{"action": "undo", "steps": 2}\n```'
        payload = await LLMIntentProvider(client).interpret("undo twice please", document)
        assert payload.action is IntentAction.UNDO
        assert payload.steps == 2

    @pytest.mark.asyncio
    async def test_prompt_contains_command_and_document(self, client, document):
        """Test that the provider sends the transcript and the rendered document."""
        client.complete.return_value = '{"action": "UNDO"}'
        await LLMIntentProvider(client).interpret("make it pop", document)
        messages = client.complete.call_args.args[0]
        assert messages[0]["role"] == "system"
        assert "make it pop" in messages[1]["content"]
        assert '"id": "p1"' in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_network_error(self, client, document):
        """Test that HTTP errors become InterpretationError."""
        client.complete.side_effect = httpx.ConnectError("down")
        with pytest.raises(InterpretationError, match="LLM request failed"):
            await LLMIntentProvider(client).interpret("x", document)

    @pytest.mark.asyncio
    async def test_not_json(self, client, document):
        """Test that a non-JSON answer becomes InterpretationError."""
        client.complete.return_value = "I am not sure what you mean."
        with pytest.raises(InterpretationError, match="not JSON"):
            await LLMIntentProvider(client).interpret("x", document)

    @pytest.mark.asyncio
    async def test_not_an_object(self, client, document):
        """Test that a JSON array is rejected."""
        client.complete.return_value = '[{"action": "UNDO"}]'
        with pytest.raises(InterpretationError, match="JSON object"):
            await LLMIntentProvider(client).interpret("x", document)

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client, document):
        """Test that a payload failing validation becomes InterpretationError."""
        client.complete.return_value = '{"action": "DANCE"}'
        with pytest.raises(InterpretationError, match="validation"):
            await LLMIntentProvider(client).interpret("x", document)

    @pytest.mark.asyncio
    async def test_invalid_payload_is_logged(self, client, document):
        """Test that a rejected payload is logged as a structured event."""
        client.complete.return_value = '{"action": "DANCE"}'
        with patch("saynote.services.llm_client.logger") as logger:
            with pytest.raises(InterpretationError):
                await LLMIntentProvider(client).interpret("x", document)

        logger.warning.assert_called_once()
        assert logger.warning.call_args.args == ("llm_payload_invalid",)
        assert logger.warning.call_args.kwargs["data"] == {"action": "DANCE"}


class TestPrompts:
    """Test prompt rendering."""

    def test_render_document(self):
        """Test the compact document summary."""
        document = (
            heading("Title", level=2, block_id="h1", children=(paragraph("x" * 300, block_id="c1"),)),
            page_link("page_1", "Notes", block_id="l1"),
        )
        rendered = render_document(document)
        assert rendered[0] == {"index": 0, "id": "h1", "type": "heading", "depth": 0, "text": "Title", "level": 2}
        assert rendered[1]["depth"] == 1
        assert rendered[1]["text"].endswith("...")
        assert rendered[2]["pageTitle"] == "Notes"
        assert "text" not in rendered[2]

    def test_build_intent_messages(self):
        """Test the message structure."""
        messages = build_intent_messages("undo", ())
        assert [m["role"] for m in messages] == ["system", "user"]
        assert json.dumps([]) in messages[1]["content"]
