from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import openai

from .config import Settings, load_settings, require

LOGGER = logging.getLogger("transcribe")


class TranscriptionError(RuntimeError):
    """Raised when the speech-to-text API rejects a recording."""


def build_client(settings: Settings) -> openai.OpenAI:
    return openai.OpenAI(api_key=require(settings, "openai_api_key"))


def describe_api_error(err: Exception) -> str:
    """Summarise an OpenAI error with its code and response body when present."""
    parts = [type(err).__name__]
    status = getattr(err, "status_code", None)
    if status is not None:
        parts.append(f"status={status}")
    code = getattr(err, "code", None)
    if code:
        parts.append(f"code={code}")
    parts.append(f"message={getattr(err, 'message', None) or err}")
    body = getattr(err, "body", None)
    if body:
        parts.append(f"response={body}")
    return " ".join(parts)


class WhisperTranscriber:
    """Transcribe audio files using the OpenAI speech-to-text API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[openai.OpenAI] = None) -> None:
        self.settings = settings or load_settings()
        self._client = client or build_client(self.settings)

    def transcribe(self, audio_path: Path, *, label: str | None = None) -> str:
        display = (label or audio_path.name).strip() or audio_path.name

        if not audio_path.exists():
            raise FileNotFoundError(f"Audio file not found: {display}")

        kwargs = {"model": self.settings.transcription_model}
        if self.settings.language:
            kwargs["language"] = self.settings.language

        LOGGER.debug("Transcribing %s with %s", display, self.settings.transcription_model)

        try:
            with audio_path.open("rb") as audio:
                result = self._client.audio.transcriptions.create(file=audio, **kwargs)
        except openai.OpenAIError as err:
            LOGGER.error("Transcription failed for %s: %s", display, describe_api_error(err))
            raise TranscriptionError(f"Transcription failed for {display}") from err

        text = getattr(result, "text", None) or ""
        return text.strip()
