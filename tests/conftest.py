from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from memobox.config import Settings
from memobox.store import MemoStore

ENV_VARS = (
    "MEMOS_DB",
    "VOICE_MEMOS_GLOB",
    "VOICE_MEMOS_STORAGE",
    "OPENAI_API_KEY",
    "CATEGORIZATION_PROMPT",
    "MEMOS_TRANSCRIPTION_MODEL",
    "MEMOS_LABELLING_MODEL",
    "MEMOS_TRANSCRIPTION_CONCURRENCY",
    "MEMOS_LABELLING_CONCURRENCY",
    "MEMOS_MAX_FILE_SIZE",
    "MEMOS_LANGUAGE",
    "MEMOS_PLAYER",
    "MEMOS_PLAYER_ARGS",
    "MEMOS_THINGS_APP",
    "MEMOS_URL_OPENER",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ENV_VARS:
        # Set then delete so teardown also drops values loaded from .env files.
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    recordings = tmp_path / "recordings"
    recordings.mkdir()
    return Settings(
        db_path=tmp_path / "memos.sqlite",
        memos_glob=str(recordings / "*.m4a"),
        storage_dir=recordings,
        openai_api_key="sk-test",
        categorization_prompt="Categorize this memo with one word.",
    )


@pytest.fixture()
def store(settings):
    s = MemoStore(settings.db_path)
    yield s
    s.close()


class FakeTranscriptions:
    def __init__(self, replies=None, error=None):
        self.replies = replies or {}
        self.error = error
        self.calls = []

    def create(self, file, model, **kwargs):
        name = Path(file.name).name
        self.calls.append({"name": name, "model": model, **kwargs})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.replies.get(name, f"transcript of {name}"))


class FakeCompletions:
    def __init__(self, reply="work", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, model, messages):
        self.calls.append({"model": model, "messages": messages})
        if self.error is not None:
            raise self.error
        reply = self.reply(messages) if callable(self.reply) else self.reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(transcriptions=None, completions=None):
    return SimpleNamespace(
        audio=SimpleNamespace(transcriptions=transcriptions or FakeTranscriptions()),
        chat=SimpleNamespace(completions=completions or FakeCompletions()),
    )
