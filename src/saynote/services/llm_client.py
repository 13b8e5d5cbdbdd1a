"""LLM client for an OpenAI-compatible chat completion endpoint, and the
intent provider built on it."""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from saynote.interpreter.interpreter import IntentProvider
from saynote.interpreter.prompts import build_intent_messages
from saynote.models.blocks import Document
from saynote.models.config import LLMConfig
from saynote.models.intent_payload import RawIntentPayload
from saynote.services.exceptions import InterpretationError

logger = structlog.get_logger()

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(?P<body>.*?)\n?```$", re.DOTALL)


def _extract_message_content(data: Dict[str, Any]) -> Optional[str]:
    """
    Extract the assistant message from a chat completion response.

    OpenAI-compatible APIs return:
    {
        "choices": [{
            "message": {"role": "assistant", "content": "..."}
        }]
    }

    Ollama's native /api/chat returns {"message": {"content": "..."}}; both
    shapes are accepted.

    Args:
        data: Parsed JSON response

    Returns:
        Content string if present, None otherwise
    """
    try:
        if "choices" in data and len(data["choices"]) > 0:
            return data["choices"][0]["message"]["content"]
        if "message" in data:
            return data["message"]["content"]
    except (KeyError, IndexError, TypeError):
        pass
    return None


def extract_json_text(text: str) -> str:
    """
    Strip Markdown code fences and leading prose from a model answer.

    Models often wrap JSON in ```json fences or prefix it with a sentence
    ("Here is the result: {...}").

    Args:
        text: Raw model output

    Returns:
        Text starting at the first '{' or '[' (fences removed)
    """
    cleaned = text.strip()
    if match := _FENCE_RE.match(cleaned):
        cleaned = match.group("body").strip()

    start = min((i for i in (cleaned.find("{"), cleaned.find("[")) if i >= 0), default=-1)
    if start > 0:
        cleaned = cleaned[start:]

    end = max(cleaned.rfind("}"), cleaned.rfind("]"))
    if end >= 0:
        cleaned = cleaned[: end + 1]
    return cleaned


class LLMClient:
    """
    HTTP client for an OpenAI-compatible chat completion API.

    Retries automatically on transient network errors; HTTP status errors
    are raised immediately.
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (endpoint, API key, model, timeout)
        """
        self.config = config
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=config.timeout_seconds,
            write=10.0,
            pool=10.0
        )

    async def complete(
        self,
        messages: List[dict],
        temperature: float = 0.0,
        json_mode: bool = True,
        retry_delay: float = 1.0,
        request_id: Optional[str] = None,
    ) -> str:
        """
        Run one chat completion and return the assistant's text.

        Args:
            messages: Chat messages (system + user)
            temperature: Sampling temperature (0.0 keeps command parsing deterministic)
            json_mode: Ask for a JSON object response (OpenAI ``response_format``)
            retry_delay: Delay in seconds between retries
            request_id: Optional identifier for logging

        Returns:
            Assistant message content

        Raises:
            httpx.HTTPError: On network or HTTP errors after retries exhausted
            ValueError: If the response has no message content
        """
        if not request_id:
            current_task = asyncio.current_task()
            request_id = current_task.get_name() if current_task else "unknown"

        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "stream": False,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        url = str(self.config.endpoint).rstrip("/") + "/chat/completions"
        headers = {"Authorization": f"Bearer {self.config.api_key}"} if self.config.api_key else {}

        logger.info(
            "llm_request_started",
            request_id=request_id,
            model=self.config.model,
            endpoint=str(self.config.endpoint),
            message_count=len(messages),
        )
        logger.debug("llm_request_payload", request_id=request_id, payload=payload)

        attempt = 0
        max_retries = self.config.max_retries

        while True:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
                    response.raise_for_status()
                    data = response.json()

                content = _extract_message_content(data)
                if content is None:
                    logger.error("llm_response_missing_content", request_id=request_id, response=data)
                    raise ValueError("LLM response has no message content")

                logger.info("llm_request_completed", request_id=request_id, content_length=len(content))
                logger.debug("llm_response_content", request_id=request_id, content=content)
                return content

            except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
                attempt += 1

                logger.warning(
                    "llm_request_retry",
                    request_id=request_id,
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(e),
                    retry_delay=retry_delay
                )

                if attempt <= max_retries:
                    await asyncio.sleep(retry_delay)
                else:
                    logger.error(
                        "llm_request_failed",
                        request_id=request_id,
                        attempts=attempt,
                        error=str(e)
                    )
                    raise

            except httpx.HTTPStatusError as e:
                # Don't retry on 4xx/5xx errors (bad request, auth, etc.)
                logger.error(
                    "llm_http_error",
                    request_id=request_id,
                    status_code=e.response.status_code,
                    error=str(e)
                )
                raise


class LLMIntentProvider(IntentProvider):
    """Intent provider that asks an LLM to parse the command."""

    def __init__(self, client: LLMClient):
        self.client = client

    async def interpret(self, text: str, document: Document) -> RawIntentPayload:
        """
        Ask the LLM for a RawIntentPayload.

        Raises:
            InterpretationError: On network/HTTP errors, non-JSON answers or
                                 answers that fail validation
        """
        messages = build_intent_messages(text, document)
        try:
            content = await self.client.complete(messages)
        except (httpx.HTTPError, ValueError) as e:
            raise InterpretationError(f"LLM request failed: {e}") from e

        json_text = extract_json_text(content)
        try:
            data = json.loads(json_text)
        except json.JSONDecodeError as e:
            logger.warning("llm_malformed_json", content=content, error=str(e))
            raise InterpretationError(f"LLM answer is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise InterpretationError(f"LLM answer must be a JSON object, got {type(data).__name__}")

        try:
            return RawIntentPayload.model_validate(data)
        except ValidationError as e:
            logger.warning("llm_payload_invalid", data=data, error=str(e))
            raise InterpretationError(f"LLM answer failed validation: {e.error_count()} error(s)") from e
