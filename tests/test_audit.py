"""Tests for the notification journal."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from house_motion.audit import DEFAULT_CAMERA, AuditLog


def test_record_defaults_camera_and_keeps_order() -> None:
    log = AuditLog()
    log.record(None, "start", event="ev1")
    log.record("porch", "end", event="ev1", file="ev1.mp4")

    entries = log.tail()
    assert [entry.stage for entry in entries] == ["start", "end"]
    assert entries[0].camera == DEFAULT_CAMERA
    assert entries[1].to_dict()["file"] == "ev1.mp4"
    assert "file" not in entries[0].to_dict()


def test_tail_filters_and_limits() -> None:
    log = AuditLog(max_entries=3)
    for index in range(5):
        log.record("porch" if index % 2 else "drive", "event", event=f"ev{index}")

    assert [entry.event for entry in log.tail()] == ["ev2", "ev3", "ev4"]
    assert [entry.event for entry in log.tail(1)] == ["ev4"]
    assert [entry.event for entry in log.tail(camera="porch")] == ["ev3"]


def test_unknown_stage_rejected() -> None:
    with pytest.raises(ValueError):
        AuditLog().record("porch", "finished", event="ev1")


def test_persistent_log_is_reloaded(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "audit.jsonl"
    log = AuditLog(path)
    log.record("porch", "file", file="/videos/ev1.mp4")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["stage"] == "file"

    with path.open("a", encoding="utf-8") as handle:
        handle.write("garbage\n")

    reloaded = AuditLog(path)
    entries = reloaded.tail()
    assert len(entries) == 1
    assert entries[0].file == "/videos/ev1.mp4"
