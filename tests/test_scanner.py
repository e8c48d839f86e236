"""Tests for the recordings tree scan."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from house_motion.events import EventLedger
from house_motion.scanner import encoded_size, is_stable, iter_recordings, scan_recordings

NOW = 1_700_000_000


def _write(path: Path, data: bytes = b"data", *, mtime: int = NOW - 600) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    os.utime(path, (mtime, mtime))
    return path


def test_old_file_is_stable_regardless_of_ledger() -> None:
    assert is_stable("clip.mp4", NOW - 120, NOW, EventLedger())


def test_recent_file_becomes_stable_once_its_event_completes() -> None:
    ledger = EventLedger()
    modified = NOW - 5

    assert not is_stable("cam1-42.mp4", modified, NOW, ledger)

    ledger.record("cam1-42", modified)
    assert is_stable("cam1-42.mp4", modified, NOW, ledger)


def test_event_completed_before_last_write_is_not_enough() -> None:
    ledger = EventLedger()
    ledger.record("cam1-42", NOW - 10)

    assert not is_stable("cam1-42.mp4", NOW - 5, NOW, ledger)


def test_stability_matches_on_basename_only() -> None:
    ledger = EventLedger()
    ledger.record("front", NOW)

    assert not is_stable("front/clip.mp4", NOW - 1, NOW, ledger)
    assert is_stable("back/front-clip.mp4", NOW - 1, NOW, ledger)


def test_iter_recordings_reports_relative_paths_and_sizes(tmp_path: Path) -> None:
    _write(tmp_path / "a.mp4", b"12345")
    _write(tmp_path / "2024" / "03" / "b.jpg", b"xy", mtime=NOW - 2)
    _write(tmp_path / ".hidden" / "c.mp4")
    _write(tmp_path / ".partial.mp4")

    entries = {entry.path: entry for entry in iter_recordings(tmp_path, EventLedger(), NOW)}

    assert set(entries) == {"a.mp4", "2024/03/b.jpg"}
    assert entries["a.mp4"].size == 5
    assert entries["a.mp4"].modified == NOW - 600
    assert entries["a.mp4"].stable is True
    assert entries["2024/03/b.jpg"].stable is False
    assert entries["2024/03/b.jpg"].to_list() == [NOW - 2, "2024/03/b.jpg", 2, False]


def test_missing_root_yields_nothing(tmp_path: Path) -> None:
    assert list(iter_recordings(tmp_path / "absent", EventLedger(), NOW)) == []


def test_scan_without_budget_lists_everything(tmp_path: Path) -> None:
    for index in range(5):
        _write(tmp_path / f"clip{index}.mp4")

    report = scan_recordings(tmp_path, EventLedger(), NOW)

    assert not report.truncated
    assert len(report.entries) == 5


def test_small_budget_returns_a_clean_prefix(tmp_path: Path) -> None:
    for index in range(10):
        _write(tmp_path / f"clip{index}.mp4")

    full = scan_recordings(tmp_path, EventLedger(), NOW)
    one_entry = encoded_size(full.entries[0].to_list())
    budget = one_entry * 3 + 2

    report = scan_recordings(tmp_path, EventLedger(), NOW, budget=budget)

    assert report.truncated
    assert report.entries == full.entries[: len(report.entries)]
    assert 0 < len(report.entries) < len(full.entries)
    rendered = json.dumps([entry.to_list() for entry in report.entries], separators=(",", ":"))
    assert len(rendered.encode("utf-8")) - 2 <= budget
    assert json.loads(rendered)


def test_budget_too_small_for_any_entry(tmp_path: Path) -> None:
    _write(tmp_path / "clip.mp4")

    report = scan_recordings(tmp_path, EventLedger(), NOW, budget=3)

    assert report.truncated
    assert report.entries == []


def test_unstattable_file_is_skipped(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write(tmp_path / "good.mp4")
    _write(tmp_path / "locked.mp4")
    real_stat = Path.stat

    def _stat(self, *args, **kwargs):
        if self.name == "locked.mp4":
            raise PermissionError("denied")
        return real_stat(self, *args, **kwargs)

    monkeypatch.setattr(Path, "stat", _stat)

    paths = [entry.path for entry in iter_recordings(tmp_path, EventLedger(), NOW)]
    assert paths == ["good.mp4"]


def test_unreadable_directory_is_skipped(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write(tmp_path / "open" / "a.mp4")
    _write(tmp_path / "sealed" / "b.mp4")
    real_iterdir = Path.iterdir

    def _iterdir(self):
        if self.name == "sealed":
            raise PermissionError("denied")
        return real_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", _iterdir)

    report = scan_recordings(tmp_path, EventLedger(), NOW)
    assert [entry.path for entry in report.entries] == ["open/a.mp4"]
    assert not report.truncated


def test_non_utf8_file_name_is_skipped(tmp_path: Path) -> None:
    _write(tmp_path / "good.mp4")
    try:
        with open(os.path.join(os.fsencode(tmp_path), b"cam-\xff.mp4"), "wb") as handle:
            handle.write(b"data")
    except OSError:
        pytest.skip("filesystem rejects non UTF-8 names")

    report = scan_recordings(tmp_path, EventLedger(), NOW, budget=4096)

    assert [entry.path for entry in report.entries] == ["good.mp4"]
    assert not report.truncated
