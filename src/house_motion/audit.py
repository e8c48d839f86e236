"""Journal of the event notifications received from Motion."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Iterable

logger = logging.getLogger(__name__)

DEFAULT_CAMERA = "camera"
STAGES = frozenset({"start", "detected", "end", "event", "file"})


@dataclass(slots=True)
class AuditEntry:
    """A single notification as reported by a Motion hook script."""

    timestamp: float
    camera: str
    stage: str
    event: str | None = None
    file: str | None = None

    def to_dict(self) -> dict[str, object | None]:
        payload: dict[str, object | None] = {
            "timestamp": self.timestamp,
            "camera": self.camera,
            "stage": self.stage,
        }
        if self.event is not None:
            payload["event"] = self.event
        if self.file is not None:
            payload["file"] = self.file
        return payload


class AuditLog:
    """Bounded log of notifications, optionally appended to a JSONL file."""

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        max_entries: int = 200,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._path: Path | None = Path(path) if path is not None else None
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        if self._path is not None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.warning("Unable to prepare audit log directory: %s", exc)
                self._path = None
        self._load_entries()

    @property
    def path(self) -> Path | None:
        return self._path

    def record(
        self,
        camera: str | None,
        stage: str,
        *,
        event: str | None = None,
        file: str | None = None,
    ) -> AuditEntry:
        """Append a notification and return the stored entry."""

        if stage not in STAGES:
            raise ValueError(f"Unknown notification stage {stage!r}")
        cleaned_camera = camera.strip() if isinstance(camera, str) else ""
        entry = AuditEntry(
            timestamp=time.time(),
            camera=cleaned_camera or DEFAULT_CAMERA,
            stage=stage,
            event=event or None,
            file=file or None,
        )
        with self._lock:
            self._entries.append(entry)
            self._append_persistent(entry)
        logger.info(
            "%s %s event=%s file=%s", entry.camera, entry.stage, entry.event, entry.file
        )
        return entry

    def tail(
        self,
        limit: int | None = None,
        *,
        camera: str | None = None,
    ) -> list[AuditEntry]:
        """Return the most recent entries, optionally for a single camera."""

        with self._lock:
            entries: Iterable[AuditEntry] = list(self._entries)
        if camera:
            entries = [entry for entry in entries if entry.camera == camera]
        entries = list(entries)
        if limit is not None:
            limit_value = max(1, int(limit))
            if len(entries) > limit_value:
                entries = entries[-limit_value:]
        return entries

    def _load_entries(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                lines = handle.readlines()
        except OSError as exc:
            logger.warning("Unable to load audit log: %s", exc)
            return
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except ValueError:
                continue
            entry = self._deserialize(payload)
            if entry is not None:
                self._entries.append(entry)

    @staticmethod
    def _deserialize(payload: object) -> AuditEntry | None:
        if not isinstance(payload, dict):
            return None
        stage = payload.get("stage")
        camera = payload.get("camera")
        if stage not in STAGES or not isinstance(camera, str):
            return None
        try:
            timestamp = float(payload.get("timestamp", 0.0))
        except (TypeError, ValueError):
            return None
        event = payload.get("event")
        file = payload.get("file")
        return AuditEntry(
            timestamp=timestamp,
            camera=camera,
            stage=stage,
            event=event if isinstance(event, str) else None,
            file=file if isinstance(file, str) else None,
        )

    def _append_persistent(self, entry: AuditEntry) -> None:
        if self._path is None:
            return
        try:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry.to_dict(), separators=(",", ":")) + "\n")
        except OSError as exc:
            logger.warning("Unable to persist audit log: %s", exc)


__all__ = ["AuditEntry", "AuditLog", "DEFAULT_CAMERA", "STAGES"]
