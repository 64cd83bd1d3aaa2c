from __future__ import annotations

import logging
from typing import Optional

import openai

from .config import Settings, load_settings, require
from .store import is_valid_label
from .transcribe import build_client, describe_api_error

LOGGER = logging.getLogger("labeller")

__all__ = ["Categorizer", "is_valid_label"]


class Categorizer:
    """Ask a chat model for a one-word category for a transcript."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[openai.OpenAI] = None) -> None:
        self.settings = settings or load_settings()
        self.prompt: str = require(self.settings, "categorization_prompt")
        self._client = client or build_client(self.settings)

    def build_messages(self, transcript: str) -> list[dict]:
        return [{"role": "user", "content": self.prompt + "\n\n" + transcript}]

    def categorize(self, transcript: str) -> str | None:
        """Return the model's reply lowercased, or None if there was no usable reply.

        The reply is not validated here; callers check it with ``is_valid_label``.
        """
        try:
            result = self._client.chat.completions.create(
                model=self.settings.labelling_model,
                messages=self.build_messages(transcript),
            )
        except openai.OpenAIError as err:
            LOGGER.error("Labelling request failed: %s", describe_api_error(err))
            return None

        if not result.choices:
            return None
        content = result.choices[0].message.content
        if not content:
            return None
        return content.strip().lower()
