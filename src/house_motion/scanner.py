"""Recursive listing of the recordings stored by Motion."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .events import EventLedger

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD_S = 60


@dataclass(frozen=True, slots=True)
class RecordingEntry:
    """A file found under the storage root."""

    modified: int
    path: str
    size: int
    stable: bool

    def to_list(self) -> list[object]:
        return [self.modified, self.path, self.size, self.stable]


@dataclass(slots=True)
class ScanReport:
    entries: list[RecordingEntry] = field(default_factory=list)
    truncated: bool = False


def encoded_size(value: object) -> int:
    """Return the size in bytes of ``value`` once rendered as compact JSON."""

    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return len(text.encode("utf-8"))


def is_stable(
    name: str,
    modified: int,
    now: int,
    ledger: EventLedger,
    *,
    quiet_period: int = DEFAULT_QUIET_PERIOD_S,
) -> bool:
    """Return ``True`` once a recording is no longer being written.

    A file is stable when it has not been modified for ``quiet_period``
    seconds, or when a recorded event matching its name completed no earlier
    than the file's last write.
    """

    if modified < now - quiet_period:
        return True
    completed = ledger.match_time(os.path.basename(name))
    return completed is not None and completed >= modified


def iter_recordings(
    root: Path | str,
    ledger: EventLedger,
    now: int,
    *,
    quiet_period: int = DEFAULT_QUIET_PERIOD_S,
) -> Iterator[RecordingEntry]:
    """Yield every visible file below ``root``, depth first."""

    base = Path(root)
    yield from _walk(base, base, ledger, int(now), quiet_period)


def _walk(
    base: Path,
    directory: Path,
    ledger: EventLedger,
    now: int,
    quiet_period: int,
) -> Iterator[RecordingEntry]:
    try:
        children = list(directory.iterdir())
    except OSError as exc:
        logger.debug("Unable to list %s: %s", directory, exc)
        return
    for child in children:
        if child.name.startswith("."):
            continue
        try:
            if child.is_dir():
                if not child.is_symlink():
                    yield from _walk(base, child, ledger, now, quiet_period)
                continue
            if not child.is_file():
                continue
            info = child.stat()
        except OSError as exc:
            logger.debug("Skipping %s: %s", child, exc)
            continue
        relative = child.relative_to(base).as_posix()
        try:
            relative.encode("utf-8")
        except UnicodeEncodeError:
            logger.debug("Skipping undecodable name %r", relative)
            continue
        modified = int(info.st_mtime)
        yield RecordingEntry(
            modified=modified,
            path=relative,
            size=int(info.st_size),
            stable=is_stable(child.name, modified, now, ledger, quiet_period=quiet_period),
        )


def scan_recordings(
    root: Path | str,
    ledger: EventLedger,
    now: int,
    *,
    quiet_period: int = DEFAULT_QUIET_PERIOD_S,
    budget: int | None = None,
) -> ScanReport:
    """Collect the recordings below ``root`` while they fit in ``budget`` bytes.

    The budget is measured against the compact JSON list of entries. The scan
    stops at the first entry that would not fit and flags the report as
    truncated; entries already collected are kept whole.
    """

    report = ScanReport()
    used = 0
    for entry in iter_recordings(root, ledger, now, quiet_period=quiet_period):
        cost = encoded_size(entry.to_list())
        if report.entries:
            cost += 1
        if budget is not None and used + cost > budget:
            report.truncated = True
            break
        used += cost
        report.entries.append(entry)
    return report


__all__ = [
    "DEFAULT_QUIET_PERIOD_S",
    "RecordingEntry",
    "ScanReport",
    "encoded_size",
    "is_stable",
    "iter_recordings",
    "scan_recordings",
]
