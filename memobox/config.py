from __future__ import annotations

from dataclasses import dataclass
import os
import shlex
from pathlib import Path
from typing import Optional, Tuple

from dotenv import find_dotenv, load_dotenv


DEFAULT_DB_PATH = Path("memos.sqlite")
DEFAULT_PLAYER = "/Applications/VLC.app/Contents/MacOS/VLC"
DEFAULT_PLAYER_ARGS: Tuple[str, ...] = ("--play-and-exit",)
DEFAULT_THINGS_APP = Path("/Applications/Things3.app")


def _env_path(key: str, default: Path) -> Path:
    raw = os.environ.get(key)
    return Path(raw).expanduser() if raw else default


def _optional_env_path(key: str, default: Path | None = None) -> Path | None:
    raw = os.environ.get(key)
    if raw:
        return Path(raw).expanduser()
    return default


def _env_args(key: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    raw = os.environ.get(key)
    return tuple(shlex.split(raw)) if raw is not None else default


def _env_int(key: str, default: int, minimum: int | None = None) -> int:
    raw = os.environ.get(key)
    if not raw:
        return default
    try:
        value = int(raw.strip().replace("_", ""))
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the memo store and the import pipeline."""

    db_path: Path = DEFAULT_DB_PATH
    memos_glob: Optional[str] = None
    storage_dir: Optional[Path] = None
    openai_api_key: Optional[str] = None
    categorization_prompt: Optional[str] = None
    transcription_model: str = "whisper-1"
    labelling_model: str = "gpt-3.5-turbo"
    transcription_concurrency: int = 2
    labelling_concurrency: int = 2
    max_file_size: int = 3_000_000
    language: Optional[str] = None
    player: str = DEFAULT_PLAYER
    player_args: Tuple[str, ...] = DEFAULT_PLAYER_ARGS
    things_app: Path = DEFAULT_THINGS_APP
    url_opener: str = "open"


# Field name -> environment variable, used for error messages.
ENV_NAMES = {
    "db_path": "MEMOS_DB",
    "memos_glob": "VOICE_MEMOS_GLOB",
    "storage_dir": "VOICE_MEMOS_STORAGE",
    "openai_api_key": "OPENAI_API_KEY",
    "categorization_prompt": "CATEGORIZATION_PROMPT",
}


def load_settings(dotenv: bool = True) -> Settings:
    """Build settings from the environment, reading ``.env`` first."""
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    return Settings(
        db_path=_env_path("MEMOS_DB", DEFAULT_DB_PATH),
        memos_glob=os.environ.get("VOICE_MEMOS_GLOB") or None,
        storage_dir=_optional_env_path("VOICE_MEMOS_STORAGE"),
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        categorization_prompt=os.environ.get("CATEGORIZATION_PROMPT") or None,
        transcription_model=os.environ.get("MEMOS_TRANSCRIPTION_MODEL", "whisper-1"),
        labelling_model=os.environ.get("MEMOS_LABELLING_MODEL", "gpt-3.5-turbo"),
        transcription_concurrency=_env_int("MEMOS_TRANSCRIPTION_CONCURRENCY", 2, minimum=1),
        labelling_concurrency=_env_int("MEMOS_LABELLING_CONCURRENCY", 2, minimum=1),
        max_file_size=_env_int("MEMOS_MAX_FILE_SIZE", 3_000_000, minimum=0),
        language=os.environ.get("MEMOS_LANGUAGE") or None,
        player=os.environ.get("MEMOS_PLAYER", DEFAULT_PLAYER),
        player_args=_env_args("MEMOS_PLAYER_ARGS", DEFAULT_PLAYER_ARGS),
        things_app=_env_path("MEMOS_THINGS_APP", DEFAULT_THINGS_APP),
        url_opener=os.environ.get("MEMOS_URL_OPENER", "open"),
    )


def require(settings: Settings, field: str):
    """Return a configured value or fail with the env var that sets it."""
    value = getattr(settings, field)
    if value in (None, ""):
        env = ENV_NAMES.get(field, field.upper())
        raise ValueError(f"{env} is not set. Add it to the environment or to .env.")
    return value
