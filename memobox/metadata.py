from __future__ import annotations

import logging
from pathlib import Path

import mutagen

LOGGER = logging.getLogger("metadata")


def probe_duration(path: Path) -> float | None:
    """Return the audio duration in seconds, or None when it can't be read.

    A missing duration is how corrupted or truncated recordings show up.
    """
    try:
        audio = mutagen.File(str(path))
    except (mutagen.MutagenError, OSError):
        LOGGER.debug("Failed to parse audio metadata for %s", path, exc_info=True)
        return None
    if audio is None or audio.info is None:
        return None

    length = getattr(audio.info, "length", None)
    if length is None:
        return None
    try:
        return float(length)
    except (TypeError, ValueError):
        return None
