"""Command interpreter: transcript + document snapshot -> exactly one EditIntent.

Resolution order:
1. The local grammar (``saynote.interpreter.patterns``) for common phrasings.
2. Plain dictation: transcripts without any command word become an
   InsertContent of one paragraph, without contacting the NLU provider.
3. The NLU provider, bounded by a timeout. Its payload is validated against
   ``RawIntentPayload`` and normalized.

Every failure along the way (timeout, provider error, invalid payload)
yields ``Unrecognized``; ``interpret`` never raises for a bad transcript.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

import structlog
from pydantic import ValidationError

from saynote.interpreter.normalize import payload_to_intent
from saynote.interpreter.patterns import looks_like_command, match_command
from saynote.models.blocks import Document, paragraph
from saynote.models.intent_payload import RawIntentPayload
from saynote.models.intents import EditIntent, InsertContent, Unrecognized
from saynote.services.exceptions import InterpretationError

logger = structlog.get_logger()


class IntentProvider(ABC):
    """External NLU service that turns a transcript into a raw intent payload.

    Implementations raise ``InterpretationError`` when they cannot answer;
    any other exception is a bug and propagates.
    """

    @abstractmethod
    async def interpret(
        self, text: str, document: Document
    ) -> Union[RawIntentPayload, Dict[str, Any]]:
        """
        Interpret a transcript against the current document.

        Args:
            text: Transcript text
            document: Current document snapshot

        Returns:
            A RawIntentPayload, or a dict to be validated as one

        Raises:
            InterpretationError: If the provider could not produce an answer
        """
        pass


class CommandInterpreter:
    """Maps transcripts to typed edit intents."""

    def __init__(self, provider: Optional[IntentProvider] = None, timeout: float = 15.0):
        """
        Initialize the interpreter.

        Args:
            provider: NLU provider for phrasings the local grammar misses
                      (None: such transcripts become Unrecognized)
            timeout: Seconds to wait for the provider
        """
        self.provider = provider
        self.timeout = timeout

    async def interpret(self, transcript: str, document: Document) -> EditIntent:
        """
        Interpret one transcript.

        Args:
            transcript: Transcribed text (not audio)
            document: Current document snapshot (may be empty)

        Returns:
            Exactly one EditIntent; Unrecognized when nothing fits
        """
        text = (transcript or "").strip()
        if not text:
            return Unrecognized("", reason="empty transcript")

        intent = match_command(text)
        if intent is not None:
            logger.info("intent_interpreted", source="grammar", intent=type(intent).__name__)
            return intent

        if not looks_like_command(text):
            logger.info("intent_interpreted", source="dictation", intent="InsertContent")
            return InsertContent((paragraph(text),))

        if self.provider is None:
            logger.info("intent_unrecognized", reason="no_provider")
            return Unrecognized(text, reason="command not recognized")

        try:
            raw = await asyncio.wait_for(self.provider.interpret(text, document), timeout=self.timeout)
            payload = raw if isinstance(raw, RawIntentPayload) else RawIntentPayload.model_validate(raw)
        except asyncio.TimeoutError:
            logger.warning("intent_provider_timeout", timeout=self.timeout)
            return Unrecognized(text, reason="interpretation timed out")
        except InterpretationError as e:
            logger.warning("intent_provider_failed", error=str(e))
            return Unrecognized(text, reason=str(e))
        except ValidationError as e:
            logger.warning("intent_payload_invalid", error_count=e.error_count(), error=str(e))
            return Unrecognized(text, reason="invalid provider payload")
        except Exception as e:
            logger.error("intent_provider_crashed", error=str(e), error_type=type(e).__name__, exc_info=True)
            return Unrecognized(text, reason=f"interpretation failed: {e}")

        intent = payload_to_intent(payload, text)
        logger.info(
            "intent_interpreted",
            source="provider",
            action=payload.action.value,
            intent=type(intent).__name__,
        )
        return intent
