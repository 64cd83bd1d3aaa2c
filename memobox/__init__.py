"""Manage voice memos: transcribe recordings, label them, and edit the results."""

__all__ = [
    "commands",
    "config",
    "labeller",
    "metadata",
    "paths",
    "progress",
    "selection",
    "service",
    "store",
    "things",
    "transcribe",
    "watcher",
    "workers",
]
