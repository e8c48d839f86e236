"""Storage location, capacity monitoring and oldest-first cleanup."""
from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB

DEFAULT_CHECK_INTERVAL_S = 10


def format_size(value: int) -> str:
    """Render a byte count as ``X.YGB``, ``X.YMB`` or ``XKB`` (truncated)."""

    value = max(0, int(value))
    if value >= GIB:
        return f"{value // GIB}.{(value % GIB) * 10 // GIB}GB"
    if value >= MIB:
        return f"{value // MIB}.{(value % MIB) * 10 // MIB}MB"
    return f"{value // KIB}KB"


class ChangeMarker:
    """Millisecond timestamp that strictly increases on every bump."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._value = int(clock() * 1000)

    @property
    def value(self) -> int:
        return self._value

    def bump(self) -> int:
        self._value = max(int(self._clock() * 1000), self._value + 1)
        return self._value


class StorageLocation:
    """The directory where Motion writes its recordings."""

    def __init__(self, marker: ChangeMarker, path: str | None = None) -> None:
        self._marker = marker
        self._path: str | None = str(path) if path else None

    @property
    def path(self) -> str | None:
        return self._path

    def set(self, path: str | Path | None) -> bool:
        """Replace the location, returning ``False`` when nothing changed."""

        new_path = str(path) if path else None
        if new_path == self._path:
            return False
        self._path = new_path
        self._marker.bump()
        logger.info("Recordings location set to %s", new_path)
        return True


@dataclass(frozen=True, slots=True)
class CapacitySnapshot:
    free_bytes: int
    total_bytes: int
    used_percent: int

    def to_dict(self) -> dict[str, str]:
        return {
            "available": format_size(self.free_bytes),
            "total": format_size(self.total_bytes),
            "used": f"{self.used_percent}%",
        }


def read_capacity(root: Path | str | None) -> CapacitySnapshot | None:
    """Query the filesystem holding ``root``; ``None`` when unavailable."""

    if not root:
        return None
    try:
        usage = shutil.disk_usage(root)
    except OSError as exc:
        logger.warning("Unable to query storage capacity of %s: %s", root, exc)
        return None
    total = int(getattr(usage, "total", 0))
    free = int(getattr(usage, "free", 0))
    if total <= 0:
        logger.warning("Storage at %s reports no capacity", root)
        return None
    return CapacitySnapshot(
        free_bytes=free,
        total_bytes=total,
        used_percent=(total - free) * 100 // total,
    )


class CapacityMonitor:
    """Rate limited capacity checks driven by the background tick."""

    def __init__(
        self,
        interval_s: int = DEFAULT_CHECK_INTERVAL_S,
        reader: Callable[[Path | str | None], CapacitySnapshot | None] = read_capacity,
    ) -> None:
        self._reader = reader
        self._last_check: int | None = None
        self._next_check = 0
        self._last: CapacitySnapshot | None = None
        self.interval_s = interval_s

    @property
    def interval_s(self) -> int:
        return self._interval

    @interval_s.setter
    def interval_s(self, value: int) -> None:
        self._interval = max(1, int(value))
        if self._last_check is not None:
            self._next_check = self._last_check + self._interval

    @property
    def last_snapshot(self) -> CapacitySnapshot | None:
        return self._last

    def due(self, now: int) -> bool:
        return now >= self._next_check

    def tick(self, root: Path | str | None, now: int) -> CapacitySnapshot | None:
        """Return a fresh snapshot when the check interval has elapsed."""

        if not self.due(now):
            return None
        self._last_check = now
        self._next_check = now + self._interval
        snapshot = self._reader(root)
        if snapshot is not None:
            self._last = snapshot
        return snapshot


class RetentionReaper:
    """Delete the oldest recording once storage use reaches a ceiling."""

    def __init__(self, ceiling_percent: int = 0) -> None:
        self.ceiling_percent = ceiling_percent

    @property
    def ceiling_percent(self) -> int:
        return self._ceiling

    @ceiling_percent.setter
    def ceiling_percent(self, value: int | None) -> None:
        ceiling = int(value or 0)
        if ceiling < 0 or ceiling > 100:
            raise ValueError("Cleanup ceiling must be between 0 and 100 percent")
        self._ceiling = ceiling

    @property
    def enabled(self) -> bool:
        return self._ceiling > 0

    def should_reap(self, snapshot: CapacitySnapshot | None) -> bool:
        if snapshot is None or not self.enabled:
            return False
        return snapshot.used_percent >= self._ceiling

    def find_oldest(self, root: Path | str) -> Path | None:
        """Return the file with the smallest modification time below ``root``."""

        oldest: Path | None = None
        oldest_time = 0.0
        for candidate in _iter_files(Path(root)):
            try:
                modified = candidate.stat().st_mtime
            except OSError as exc:
                logger.warning("Unable to stat %s: %s", candidate, exc)
                continue
            if oldest is None or modified < oldest_time:
                oldest = candidate
                oldest_time = modified
        return oldest

    def reap(self, root: Path | str) -> Path | None:
        """Delete the single oldest file and its parent if that became empty."""

        base = Path(root)
        oldest = self.find_oldest(base)
        if oldest is None:
            return None
        try:
            oldest.unlink()
        except OSError as exc:
            logger.warning("Unable to delete %s: %s", oldest, exc)
            return None
        logger.info("Deleted oldest recording %s", oldest)
        parent = oldest.parent
        if parent != base:
            try:
                parent.rmdir()
            except OSError:
                logger.debug("Keeping non-empty directory %s", parent)
            else:
                logger.info("Removed empty directory %s", parent)
        return oldest


def _iter_files(directory: Path) -> Iterator[Path]:
    try:
        children = list(directory.iterdir())
    except OSError as exc:
        logger.warning("Unable to list %s: %s", directory, exc)
        return
    for child in children:
        if child.name.startswith("."):
            continue
        try:
            is_directory = child.is_dir() and not child.is_symlink()
            is_file = not is_directory and child.is_file()
        except OSError as exc:
            logger.warning("Unable to stat %s: %s", child, exc)
            continue
        if is_directory:
            yield from _iter_files(child)
        elif is_file:
            yield child


__all__ = [
    "CapacityMonitor",
    "CapacitySnapshot",
    "ChangeMarker",
    "DEFAULT_CHECK_INTERVAL_S",
    "RetentionReaper",
    "StorageLocation",
    "format_size",
    "read_capacity",
]
