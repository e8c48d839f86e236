"""Configuration for the recordings store."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

STORE_ENV = "HOUSEMOTION_STORE"
CLEAN_ENV = "HOUSEMOTION_CLEAN"


@dataclass(slots=True)
class StoreSettings:
    """Operator options for where recordings live and when to clean them."""

    storage_path: str = "/videos"
    clean_percent: int = 0
    check_interval_s: int = 10
    stable_after_s: int = 60
    status_limit_bytes: int = 65536
    reload_interval_s: int = 300
    audit_log_path: str | None = None

    def __post_init__(self) -> None:
        try:
            self.clean_percent = int(self.clean_percent)
            self.check_interval_s = int(self.check_interval_s)
            self.stable_after_s = int(self.stable_after_s)
            self.status_limit_bytes = int(self.status_limit_bytes)
            self.reload_interval_s = int(self.reload_interval_s)
        except (TypeError, ValueError) as exc:
            raise ValueError("Store settings values must be integers") from exc
        self.storage_path = str(self.storage_path or "").strip()
        if not self.storage_path:
            raise ValueError("Storage path must not be empty")
        if not (0 <= self.clean_percent <= 100):
            raise ValueError("Cleanup ceiling must be between 0 and 100 percent")
        if self.check_interval_s < 1:
            raise ValueError("Capacity check interval must be at least one second")
        if self.stable_after_s < 0:
            raise ValueError("Stability delay must not be negative")
        if self.status_limit_bytes < 256:
            raise ValueError("Status limit must be at least 256 bytes")
        if self.reload_interval_s < 1:
            raise ValueError("Reload interval must be at least one second")
        if self.audit_log_path is not None:
            self.audit_log_path = str(self.audit_log_path).strip() or None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StoreSettings":
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})


def apply_environment(
    settings: StoreSettings,
    environ: Mapping[str, str] | None = None,
) -> StoreSettings:
    """Return ``settings`` with the ``HOUSEMOTION_*`` overrides applied."""

    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    store = env.get(STORE_ENV)
    if store:
        overrides["storage_path"] = store
    clean = env.get(CLEAN_ENV)
    if clean:
        try:
            overrides["clean_percent"] = int(clean)
        except ValueError:
            logger.warning("Invalid %s value %r; ignoring", CLEAN_ENV, clean)
    if not overrides:
        return settings
    return StoreSettings.from_dict({**settings.to_dict(), **overrides})


class StoreSettingsStore:
    """Simple JSON backed persistence for :class:`StoreSettings`."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StoreSettings:
        if not self._path.exists():
            return StoreSettings()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError("Invalid store settings JSON") from exc
        if not isinstance(raw, Mapping):
            raise ValueError("Store settings must be a JSON object")
        return StoreSettings.from_dict(raw)

    def save(self, settings: StoreSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = settings.to_dict()
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def update(self, payload: Mapping[str, Any]) -> StoreSettings:
        settings = self.load()
        updated = StoreSettings.from_dict({**settings.to_dict(), **dict(payload)})
        self.save(updated)
        return updated


__all__ = [
    "CLEAN_ENV",
    "STORE_ENV",
    "StoreSettings",
    "StoreSettingsStore",
    "apply_environment",
]
