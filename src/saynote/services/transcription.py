"""Transcription provider interface.

Audio capture and speech-to-text are external; saynote only consumes the
transcribed text. ``transcribe_and_handle`` glues a provider to an
EditSession.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()


class TranscriptionResult(BaseModel):
    """Result of transcribing one audio clip."""

    success: bool = Field(..., description="Whether transcription succeeded")
    text: str = Field(default="", description="Transcribed text")
    error: Optional[str] = Field(default=None, description="Provider error message on failure")

    model_config = {"frozen": True}


class TranscriptionProvider(ABC):
    """External speech-to-text service."""

    @abstractmethod
    async def transcribe(self, audio_handle: Any) -> TranscriptionResult:
        """
        Transcribe audio.

        Args:
            audio_handle: Provider-specific handle (file path, URI, buffer)

        Returns:
            TranscriptionResult; failures are reported with ``success=False``
        """
        pass


async def transcribe_and_handle(provider: TranscriptionProvider, audio_handle: Any, session):
    """
    Transcribe audio and feed the text to an edit session.

    Args:
        provider: Transcription provider
        audio_handle: Audio to transcribe
        session: EditSession receiving the transcript

    Returns:
        The session's CommandOutcome, or None if nothing was transcribed
    """
    result = await provider.transcribe(audio_handle)
    if not result.success or not result.text.strip():
        logger.warning("transcription_empty", success=result.success, error=result.error)
        session.notify("error", "Could not transcribe audio", result.error or "No speech detected")
        return None
    logger.info("transcription_received", length=len(result.text))
    return await session.handle_transcript(result.text)
