"""Command-line helpers to inspect a recordings store."""
from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Sequence

from .engine import StorageEngine
from .settings import StoreSettings, StoreSettingsStore, apply_environment
from .version import APP_VERSION


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the diagnostics CLI."""

    parser = argparse.ArgumentParser(
        prog="python -m house_motion.diagnostics",
        description="HouseMotion storage diagnostics",
    )
    parser.add_argument(
        "--config",
        help="Settings file to read (defaults are used when omitted).",
    )
    parser.add_argument(
        "--store",
        help="Recordings directory, overriding the configured one.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum size of the recordings report in bytes.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit results as JSON for scripting.",
    )
    return parser


def load_settings(config: str | None, store: str | None) -> StoreSettings:
    settings = StoreSettingsStore(config).load() if config else StoreSettings()
    settings = apply_environment(settings)
    if store:
        settings = StoreSettings.from_dict({**settings.to_dict(), "storage_path": store})
    return settings


def collect_diagnostics(settings: StoreSettings, limit: int | None = None) -> dict[str, object]:
    """Return the store status together with the settings it was computed from."""

    engine = StorageEngine.from_settings(settings)
    status = engine.status(limit)
    return {
        "version": APP_VERSION,
        "timestamp": int(time.time()),
        "settings": settings.to_dict(),
        "truncated": status.truncated,
        "cctv": status.payload,
    }


def run(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.config, args.store)
    except ValueError as exc:
        parser.error(str(exc))
    payload = collect_diagnostics(settings, args.limit)

    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 1 if payload["truncated"] else 0

    store = payload["cctv"]
    print(f"HouseMotion {APP_VERSION}")
    print(f"Recordings: {settings.storage_path}")
    if "used" in store:
        print(f" - Used: {store['used']} of {store['total']} ({store['available']} free)")
    else:
        print(" - Capacity: unavailable")
    ceiling = settings.clean_percent
    print(f" - Cleanup: {'at ' + str(ceiling) + '%' if ceiling else 'disabled'}")
    recordings = store.get("recordings", [])
    pending = sum(1 for entry in recordings if not entry[3])
    print(f" - Files: {len(recordings)} ({pending} still being written)")
    if payload["truncated"]:
        print(" - Report truncated: raise --limit to list every file")
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by `python -m house_motion.diagnostics`."""

    return run(argv)


__all__ = ["build_parser", "collect_diagnostics", "load_settings", "run", "main"]


if __name__ == "__main__":  # pragma: no cover - module behaviour
    sys.exit(main())
