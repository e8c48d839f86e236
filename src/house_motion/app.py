"""FastAPI application exposing the cctv recordings API."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
import time
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from .audit import AuditLog
from .engine import StorageEngine
from .settings import StoreSettings, StoreSettingsStore, apply_environment
from .version import APP_VERSION

DEFAULT_CONFIG_PATH = Path("data/housemotion.json")
BACKGROUND_PERIOD_S = 1.0


class SettingsPayload(BaseModel):
    storage_path: str | None = None
    clean_percent: int | None = Field(default=None, ge=0, le=100)
    check_interval_s: int | None = Field(default=None, ge=1)
    stable_after_s: int | None = Field(default=None, ge=0)
    status_limit_bytes: int | None = Field(default=None, ge=256)
    reload_interval_s: int | None = Field(default=None, ge=1)


def create_app(
    config_path: Path | str = DEFAULT_CONFIG_PATH,
    *,
    hostname: str | None = None,
) -> FastAPI:
    app = FastAPI(title="HouseMotion", version=APP_VERSION)

    logger = logging.getLogger(__name__)

    host = hostname or socket.gethostname()
    settings_store = StoreSettingsStore(config_path)
    try:
        settings = apply_environment(settings_store.load())
    except ValueError as exc:
        logger.warning("Ignoring invalid settings in %s: %s", settings_store.path, exc)
        settings = apply_environment(StoreSettings())

    engine = StorageEngine.from_settings(settings)
    audit_log = AuditLog(settings.audit_log_path)

    app.state.engine = engine
    app.state.audit_log = audit_log
    app.state.settings_store = settings_store

    background_task: asyncio.Task | None = None
    next_reload = 0

    def _apply_settings(fresh: StoreSettings) -> None:
        nonlocal settings, audit_log
        if fresh == settings:
            return
        if fresh.audit_log_path != settings.audit_log_path:
            audit_log = AuditLog(fresh.audit_log_path)
            app.state.audit_log = audit_log
            logger.info("Audit journal moved to %s", fresh.audit_log_path)
        settings = fresh
        engine.configure(fresh)
        logger.info("Store settings applied from %s", settings_store.path)

    def _reload_settings() -> None:
        try:
            fresh = apply_environment(settings_store.load())
        except ValueError as exc:
            logger.warning("Unable to reload %s: %s", settings_store.path, exc)
            return
        _apply_settings(fresh)

    async def _background_loop() -> None:
        nonlocal next_reload
        last_call = 0
        while True:
            now = int(time.time())
            if now > last_call:
                last_call = now
                if now >= next_reload:
                    next_reload = now + settings.reload_interval_s
                    await run_in_threadpool(_reload_settings)
                try:
                    await run_in_threadpool(engine.background, now)
                except Exception:  # pragma: no cover - keep the driver alive
                    logger.exception("Storage background check failed")
            await asyncio.sleep(BACKGROUND_PERIOD_S)

    def _notify(
        stage: str,
        event: str | None,
        file: str | None,
        camera: str | None,
        *,
        commit: bool,
    ) -> dict[str, object]:
        event = event.strip() if event else None
        file = file.strip() if file else None
        if not event and not file:
            raise HTTPException(status_code=400, detail="Missing event or file parameter")
        entry = audit_log.record(camera, stage, event=event, file=file)
        recorded = False
        if commit and event:
            engine.record_event(event)
            recorded = True
        return {
            "camera": entry.camera,
            "stage": stage,
            "event": event,
            "file": file,
            "recorded": recorded,
            "updated": engine.change_marker(),
        }

    @app.on_event("startup")
    async def startup() -> None:  # pragma: no cover - framework hook
        nonlocal background_task
        logger.info("HouseMotion %s serving %s on %s", APP_VERSION, engine.location, host)
        background_task = asyncio.create_task(_background_loop())

    @app.on_event("shutdown")
    async def shutdown() -> None:  # pragma: no cover - framework hook
        nonlocal background_task
        if background_task is not None:
            background_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await background_task
            background_task = None

    @app.get("/cctv/check")
    async def check() -> dict[str, object]:
        return {
            "host": host,
            "timestamp": int(time.time()),
            "updated": engine.change_marker(),
        }

    @app.get("/cctv/status")
    async def status() -> dict[str, object]:
        store_status = await run_in_threadpool(engine.status)
        if store_status.truncated:
            logger.error(
                "Status of %s exceeds %d bytes", engine.location, settings.status_limit_bytes
            )
            raise HTTPException(status_code=413, detail="Payload too large")
        return {
            "host": host,
            "timestamp": int(time.time()),
            "updated": engine.change_marker(),
            "cctv": store_status.payload,
        }

    @app.get("/cctv/motion/event")
    async def motion_event(
        event: str | None = None,
        file: str | None = None,
        camera: str | None = None,
    ) -> dict[str, object]:
        return _notify("event", event, file, camera, commit=True)

    @app.get("/cctv/motion/event/start")
    async def motion_event_start(
        event: str | None = None,
        file: str | None = None,
        camera: str | None = None,
    ) -> dict[str, object]:
        return _notify("start", event, file, camera, commit=False)

    @app.get("/cctv/motion/event/detected")
    async def motion_event_detected(
        event: str | None = None,
        file: str | None = None,
        camera: str | None = None,
    ) -> dict[str, object]:
        return _notify("detected", event, file, camera, commit=True)

    @app.get("/cctv/motion/event/end")
    async def motion_event_end(
        event: str | None = None,
        file: str | None = None,
        camera: str | None = None,
    ) -> dict[str, object]:
        return _notify("end", event, file, camera, commit=True)

    @app.get("/cctv/motion/file")
    async def motion_file(
        file: str | None = None,
        event: str | None = None,
        camera: str | None = None,
    ) -> dict[str, object]:
        return _notify("file", event, file, camera, commit=True)

    @app.get("/cctv/recordings/{relative_path:path}")
    async def get_recording(relative_path: str) -> FileResponse:
        root = engine.location
        if root is None:
            raise HTTPException(status_code=404, detail="Recording not found")
        if any(part.startswith(".") for part in Path(relative_path).parts):
            raise HTTPException(status_code=404, detail="Recording not found")
        base = Path(root).resolve()
        target = (base / relative_path).resolve()
        if not target.is_relative_to(base) or not target.is_file():
            raise HTTPException(status_code=404, detail="Recording not found")
        return FileResponse(target)

    @app.get("/cctv/log")
    async def get_log(limit: int = 50, camera: str | None = None) -> dict[str, object]:
        entries = audit_log.tail(limit, camera=camera)
        return {"events": [entry.to_dict() for entry in entries]}

    @app.get("/cctv/settings")
    async def get_settings() -> dict[str, object]:
        return settings.to_dict()

    @app.put("/cctv/settings")
    async def update_settings(payload: SettingsPayload) -> dict[str, object]:
        data = payload.model_dump(exclude_none=True)
        if not data:
            raise HTTPException(status_code=400, detail="No settings provided")
        try:
            saved = await run_in_threadpool(settings_store.update, data)
            fresh = apply_environment(saved)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await run_in_threadpool(_apply_settings, fresh)
        return settings.to_dict()

    return app


__all__ = ["create_app", "DEFAULT_CONFIG_PATH"]
