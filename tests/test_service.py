import time
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import FakeCompletions, FakeTranscriptions, fake_client
from memobox import service as service_module
from memobox.labeller import Categorizer
from memobox.service import ImportService
from memobox.transcribe import TranscriptionError, WhisperTranscriber


@pytest.fixture(autouse=True)
def readable_audio(monkeypatch):
    """Every file has a duration unless its name says it's corrupted."""
    monkeypatch.setattr(
        service_module,
        "probe_duration",
        lambda path: None if "corrupt" in Path(path).name else 10.0,
    )


def make_service(settings, store, transcriptions=None, completions=None):
    client = fake_client(transcriptions, completions)
    return ImportService(
        settings,
        store=store,
        transcriber=WhisperTranscriber(settings, client=client),
        categorizer=Categorizer(settings, client=client),
        show_progress=False,
    )


def write(settings, name, size=10):
    path = settings.storage_dir / name
    path.write_bytes(b"x" * size)
    return path


def test_find_pending_skips_known_and_large_files(settings, store):
    write(settings, "a.m4a")
    write(settings, "b.m4a")
    write(settings, "big.m4a", size=200)
    write(settings, "notes.txt")
    store.add("a.m4a", "already here")
    service = make_service(replace(settings, max_file_size=100), store)

    pending = service.find_pending()

    assert [p.name for p in pending] == ["b.m4a"]
    assert service.report.found == 3
    assert service.report.skipped == 1


def test_find_pending_skips_duplicate_basenames(settings, store, tmp_path):
    (settings.storage_dir / "sub").mkdir()
    write(settings, "a.m4a")
    write(settings, "sub/a.m4a")
    service = make_service(replace(settings, memos_glob=str(settings.storage_dir / "**" / "*.m4a")), store)

    pending = service.find_pending()

    assert [p.name for p in pending] == ["a.m4a"]


def test_run_transcribes_and_labels(settings, store):
    write(settings, "a.m4a")
    write(settings, "b.m4a")
    store.add("old.m4a", "left over from last time")
    completions = FakeCompletions(reply="Ideas")

    report = make_service(settings, store, completions=completions).run()

    memos = {memo.name: memo for memo in store.load()}
    assert memos["a.m4a"].content == "transcript of a.m4a"
    assert memos["b.m4a"].content == "transcript of b.m4a"
    assert {memo.label for memo in memos.values()} == {"ideas"}
    assert report.transcribed == 2
    assert report.labelled == 3
    assert report.failed == 0


def test_corrupted_files_are_skipped(settings, store):
    write(settings, "corrupt.m4a")
    transcriptions = FakeTranscriptions()
    service = make_service(settings, store, transcriptions)

    assert service.transcribe_pending() == 0
    assert transcriptions.calls == []
    assert service.report.skipped == 1
    assert store.load() == []


def test_transcription_errors_are_logged_and_skipped(settings, store, caplog):
    write(settings, "a.m4a")
    transcriptions = FakeTranscriptions(error=TranscriptionError("boom"))
    service = make_service(settings, store, transcriptions)

    assert service.transcribe_pending() == 0
    assert store.load() == []
    assert service.report.failed == 1
    assert "Failed to transcribe a.m4a" in caplog.text


def test_empty_transcripts_are_not_stored(settings, store):
    write(settings, "a.m4a")
    service = make_service(settings, store, FakeTranscriptions({"a.m4a": "   "}))

    service.transcribe_pending()

    assert store.load() == []


def test_invalid_labels_leave_memo_unlabelled(settings, store, caplog):
    store.add("a.m4a", "hello")
    store.add("b.m4a", "world")

    def reply(messages):
        return "two words" if messages[0]["content"].endswith("hello") else "greeting"

    service = make_service(settings, store, completions=FakeCompletions(reply=reply))

    assert service.label_pending() == 1
    assert store.get("a.m4a").label is None
    assert store.get("b.m4a").label == "greeting"
    assert "a.m4a: unknown label 'two words'" in caplog.text


def test_run_without_labelling(settings, store):
    write(settings, "a.m4a")
    completions = FakeCompletions()

    make_service(settings, store, completions=completions).run(label=False)

    assert completions.calls == []
    assert store.get("a.m4a").label is None


def test_service_needs_glob(settings, store):
    with pytest.raises(ValueError, match="VOICE_MEMOS_GLOB"):
        make_service(replace(settings, memos_glob=None), store)


def test_watch_item_transcribes_and_queues_labelling(settings, store):
    path = write(settings, "new.m4a")
    service = make_service(settings, store)
    labelled = []

    class Pool:
        def submit(self, item):
            labelled.append(item)

    service._label_pool = Pool()
    service._watch_item(path)

    assert labelled == [("new.m4a", "transcript of new.m4a")]


def test_enqueue_path_skips_known_memos(settings, store):
    store.add("known.m4a", "x")
    service = make_service(settings, store)
    submitted = []

    class Pool:
        def submit(self, item):
            submitted.append(item)

    service._transcribe_pool = Pool()
    service.enqueue_path(settings.storage_dir / "known.m4a")
    service.enqueue_path(settings.storage_dir / "new.m4a")
    service.enqueue_path(settings.storage_dir / "new.m4a")

    assert [p.name for p in submitted] == ["new.m4a"]


def test_find_pending_skips_files_that_vanish(settings, store, monkeypatch):
    write(settings, "a.m4a")
    gone = settings.storage_dir / "gone.m4a"
    found = [str(settings.storage_dir / "a.m4a"), str(gone)]
    monkeypatch.setattr(service_module.glob, "glob", lambda pattern, recursive: found)
    monkeypatch.setattr(Path, "is_file", lambda self: True)
    service = make_service(settings, store)

    pending = service.find_pending()

    assert [p.name for p in pending] == ["a.m4a"]
    assert service.report.skipped == 1


def test_wait_until_ready_gives_up_on_empty_file(settings, store, monkeypatch):
    path = write(settings, "empty.m4a", size=0)
    sleeps = []
    monkeypatch.setattr(service_module.time, "sleep", sleeps.append)
    service = make_service(settings, store)

    assert service._wait_until_ready(path, delay=0) is False
    assert sleeps == [0, 0, 0]


def test_wait_until_ready_accepts_written_file(settings, store):
    path = write(settings, "a.m4a")
    assert make_service(settings, store)._wait_until_ready(path, delay=0) is True


def test_watch_item_skips_large_files(settings, store):
    path = write(settings, "big.m4a", size=200)
    transcriptions = FakeTranscriptions()
    service = make_service(replace(settings, max_file_size=100), store, transcriptions)
    service._inflight.add("big.m4a")

    service._watch_item(path)

    assert transcriptions.calls == []
    assert store.load() == []
    assert service.report.skipped == 1
    assert "big.m4a" not in service._inflight


def test_watching_imports_new_recordings_and_stops(settings, store):
    service = make_service(settings, store)
    service.start_watching()
    observer = service._observer
    threads = service._transcribe_pool._threads + service._label_pool._threads
    try:
        assert observer.is_alive()
        staging = settings.storage_dir / "new.tmp"
        staging.write_bytes(b"x" * 10)
        staging.rename(settings.storage_dir / "new.m4a")

        deadline = time.monotonic() + 10
        while time.monotonic() < deadline:
            if store.exists("new.m4a") and store.get("new.m4a").label is not None:
                break
            time.sleep(0.05)
    finally:
        service.stop_watching()

    memo = store.get("new.m4a")
    assert memo.content == "transcript of new.m4a"
    assert memo.label == "work"
    assert not observer.is_alive()
    assert not any(thread.is_alive() for thread in threads)
    assert service._observer is None
    assert service._transcribe_pool is None and service._label_pool is None
