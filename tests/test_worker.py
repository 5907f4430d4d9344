"""Tests for worker queue selection."""

from __future__ import annotations

import pytest

from src.worker import resolve_queues


def test_defaults_to_every_stage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WORKER_QUEUES", raising=False)
    assert resolve_queues() == ["transcription", "analysis", "clipping"]


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_QUEUES", "analysis, clipping")
    assert resolve_queues() == ["analysis", "clipping"]


def test_explicit_value_wins() -> None:
    assert resolve_queues("transcription") == ["transcription"]


def test_unknown_queue_rejected() -> None:
    with pytest.raises(ValueError):
        resolve_queues("transcription,rendering")
