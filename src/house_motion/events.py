"""Ring buffer of recent Motion events used to detect finished recordings."""
from __future__ import annotations

from dataclasses import dataclass

LEDGER_CAPACITY = 8
EVENT_ID_MAX_LENGTH = 31


@dataclass(frozen=True, slots=True)
class EventRecord:
    """A detection event reported as complete by the camera process."""

    id: str
    timestamp: int


class EventLedger:
    """Fixed-size circular record of the most recent event identifiers.

    Motion names its files after the event, so a recording belongs to an event
    when the event identifier appears anywhere in the file name. Only the last
    ``capacity`` events are remembered; older ones are overwritten in place.
    """

    def __init__(self, capacity: int = LEDGER_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("Ledger capacity must be positive")
        self._slots: list[EventRecord | None] = [None] * capacity
        self._cursor = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def record(self, event_id: str, timestamp: int) -> EventRecord:
        """Store ``event_id`` at the write cursor and advance it."""

        cleaned = event_id.strip() if isinstance(event_id, str) else ""
        if not cleaned:
            raise ValueError("Event identifier must not be empty")
        record = EventRecord(id=cleaned[:EVENT_ID_MAX_LENGTH], timestamp=int(timestamp))
        self._slots[self._cursor] = record
        self._cursor = (self._cursor + 1) % len(self._slots)
        return record

    def match_time(self, filename: str) -> int | None:
        """Return the timestamp of the newest event whose id is part of ``filename``."""

        for record in self.entries():
            if record.id in filename:
                return record.timestamp
        return None

    def entries(self) -> list[EventRecord]:
        """Return the live records, most recently written first."""

        size = len(self._slots)
        ordered: list[EventRecord] = []
        for offset in range(1, size + 1):
            record = self._slots[(self._cursor - offset) % size]
            if record is not None:
                ordered.append(record)
        return ordered

    def clear(self) -> None:
        self._slots = [None] * len(self._slots)
        self._cursor = 0


__all__ = ["EVENT_ID_MAX_LENGTH", "LEDGER_CAPACITY", "EventLedger", "EventRecord"]
