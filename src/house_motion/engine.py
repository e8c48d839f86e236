"""Single owner of the recordings store state."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Callable

from .events import EventLedger, EventRecord
from .scanner import DEFAULT_QUIET_PERIOD_S, encoded_size, scan_recordings
from .settings import StoreSettings
from .store import (
    DEFAULT_CHECK_INTERVAL_S,
    CapacityMonitor,
    CapacitySnapshot,
    ChangeMarker,
    RetentionReaper,
    StorageLocation,
    read_capacity,
)

logger = logging.getLogger(__name__)

DEFAULT_STATUS_LIMIT = 65536


@dataclass(slots=True)
class StoreStatus:
    """Status fragment describing the store, plus whether it had to be cut short."""

    payload: dict[str, object] = field(default_factory=dict)
    truncated: bool = False


class StorageEngine:
    """Coordinates the event ledger, storage location, monitor and reaper.

    Every operation takes the same re-entrant lock, so an event recorded
    before a status request is always visible to the scan serving it.
    """

    def __init__(
        self,
        storage_path: str | Path | None = None,
        *,
        clean_percent: int = 0,
        check_interval_s: int = DEFAULT_CHECK_INTERVAL_S,
        stable_after_s: int = DEFAULT_QUIET_PERIOD_S,
        status_limit_bytes: int = DEFAULT_STATUS_LIMIT,
        clock: Callable[[], float] = time.time,
        capacity_reader: Callable[[Path | str | None], CapacitySnapshot | None] = read_capacity,
    ) -> None:
        self._clock = clock
        self._capacity_reader = capacity_reader
        self._mutex = RLock()
        self._marker = ChangeMarker(clock)
        self._location = StorageLocation(self._marker, str(storage_path) if storage_path else None)
        self._ledger = EventLedger()
        self._monitor = CapacityMonitor(check_interval_s, reader=capacity_reader)
        self._reaper = RetentionReaper(clean_percent)
        self._quiet_period = int(stable_after_s)
        self._status_limit = int(status_limit_bytes)
        self._last_tick: int | None = None

    @classmethod
    def from_settings(cls, settings: StoreSettings, **kwargs) -> "StorageEngine":
        return cls(
            settings.storage_path,
            clean_percent=settings.clean_percent,
            check_interval_s=settings.check_interval_s,
            stable_after_s=settings.stable_after_s,
            status_limit_bytes=settings.status_limit_bytes,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def ledger(self) -> EventLedger:
        return self._ledger

    @property
    def location(self) -> str | None:
        return self._location.path

    @property
    def reaper(self) -> RetentionReaper:
        return self._reaper

    @property
    def monitor(self) -> CapacityMonitor:
        return self._monitor

    def change_marker(self) -> int:
        with self._mutex:
            return self._marker.value

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def configure(self, settings: StoreSettings) -> None:
        with self._mutex:
            self._location.set(settings.storage_path)
            self._reaper.ceiling_percent = settings.clean_percent
            self._monitor.interval_s = settings.check_interval_s
            self._quiet_period = int(settings.stable_after_s)
            self._status_limit = int(settings.status_limit_bytes)

    def set_location(self, path: str | Path | None) -> bool:
        with self._mutex:
            return self._location.set(path)

    def record_event(self, event_id: str, timestamp: int | None = None) -> EventRecord:
        """Remember ``event_id`` as completed at ``timestamp`` (default: now)."""

        when = int(self._clock()) if timestamp is None else int(timestamp)
        with self._mutex:
            record = self._ledger.record(event_id, when)
            self._marker.bump()
        return record

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------
    def background(self, now: int | None = None) -> Path | None:
        """Run the capacity check and, when over the ceiling, reap one file."""

        now = int(self._clock()) if now is None else int(now)
        with self._mutex:
            if self._last_tick is not None and now <= self._last_tick:
                return None
            self._last_tick = now
            root = self._location.path
            if root is None:
                return None
            snapshot = self._monitor.tick(root, now)
            if not self._reaper.should_reap(snapshot):
                return None
            logger.info(
                "Storage at %d%% used (ceiling %d%%), reclaiming oldest recording",
                snapshot.used_percent,
                self._reaper.ceiling_percent,
            )
            return self._reaper.reap(root)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def status(self, limit_bytes: int | None = None, *, now: int | None = None) -> StoreStatus:
        """Describe the storage and its recordings within ``limit_bytes`` of JSON."""

        now = int(self._clock()) if now is None else int(now)
        limit = self._status_limit if limit_bytes is None else int(limit_bytes)
        with self._mutex:
            root = self._location.path
            if root is None:
                return StoreStatus()
            payload: dict[str, object] = {"path": root}
            snapshot = self._capacity_reader(root)
            if snapshot is not None:
                payload.update(snapshot.to_dict())
            budget = limit - encoded_size({**payload, "recordings": []})
            if budget < 0:
                return StoreStatus(truncated=True)
            report = scan_recordings(
                root,
                self._ledger,
                now,
                quiet_period=self._quiet_period,
                budget=budget,
            )
        payload["recordings"] = [entry.to_list() for entry in report.entries]
        return StoreStatus(payload=payload, truncated=report.truncated)


__all__ = ["DEFAULT_STATUS_LIMIT", "StorageEngine", "StoreStatus"]
