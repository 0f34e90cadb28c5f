"""Times Gate PC monitor: local HTTP service.

Exposes:
  GET    /health                          - liveness + running devices
  GET    /metrics                         - current host metrics
  GET    /devices                         - Divoom devices on this LAN
  GET    /devices/{address}/pc-monitor    - saved settings + runtime status
  PUT    /devices/{address}/pc-monitor    - save settings, enable/disable
  DELETE /devices/{address}/pc-monitor    - stop and forget a device

On startup every previously enabled device is resumed in the background.

Start with::

    python -m timesgate.server
    # or
    uvicorn timesgate.server:app --host 127.0.0.1 --port 5120
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from timesgate import __version__
from timesgate.db import init_db
from timesgate.device.client import DeviceClientError, DivoomClient
from timesgate.metrics.provider import MetricsProvider
from timesgate.sync.manager import DeviceSyncManager
from timesgate.sync.settings import PcMonitorSettings, SettingsStore

logger = logging.getLogger(__name__)

_manager: DeviceSyncManager | None = None
_restore_task: asyncio.Task | None = None


def _get_manager() -> DeviceSyncManager:
    global _manager
    if _manager is None:
        init_db()
        _manager = DeviceSyncManager(
            provider=MetricsProvider(),
            client=DivoomClient(),
            store=SettingsStore(),
        )
    return _manager


@asynccontextmanager
async def lifespan(_: FastAPI):
    global _restore_task
    manager = _get_manager()
    _restore_task = asyncio.create_task(manager.restore_all())
    try:
        yield
    finally:
        if not _restore_task.done():
            _restore_task.cancel()
        await manager.stop_all()
        client = manager.client
        if isinstance(client, DivoomClient):
            await client.aclose()


# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

app = FastAPI(title="Times Gate PC Monitor", version=__version__, lifespan=lifespan)


class PcMonitorRequest(BaseModel):
    lcdIndex: int = Field(ge=0)
    enabled: bool


def _device_view(manager: DeviceSyncManager, address: str) -> dict:
    settings = manager.store.load(address)
    return {
        "address": address,
        "settings": settings.model_dump(by_alias=True) if settings else None,
        "running": manager.is_running(address),
        **manager.status(address).to_dict(),
    }


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    manager = _get_manager()
    return {"status": "ok", "running": manager.running_addresses()}


@app.get("/metrics")
async def metrics():
    manager = _get_manager()
    try:
        snapshot = await manager.provider.fetch()
    except Exception as exc:
        logger.error("Metrics poll failed: %s", exc)
        raise HTTPException(status_code=503, detail="Metrics unavailable")
    return snapshot.to_dict()


@app.get("/devices")
async def list_devices():
    manager = _get_manager()
    try:
        devices = await manager.client.discover()
    except DeviceClientError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"devices": [d.to_dict() for d in devices]}


@app.get("/devices/{address}/pc-monitor")
async def get_pc_monitor(address: str):
    return _device_view(_get_manager(), address)


@app.put("/devices/{address}/pc-monitor")
async def put_pc_monitor(address: str, request: PcMonitorRequest):
    manager = _get_manager()
    settings = PcMonitorSettings(lcd_index=request.lcdIndex, enabled=request.enabled)
    manager.store.save(address, settings)

    if not settings.enabled:
        manager.stop(address)
        return _device_view(manager, address)

    ok = await manager.enable(address, settings.lcd_index)
    view = _device_view(manager, address)
    if not ok:
        return JSONResponse(status_code=502, content=view)
    return view


@app.delete("/devices/{address}/pc-monitor")
async def delete_pc_monitor(address: str):
    manager = _get_manager()
    manager.stop(address)
    manager.store.delete(address)
    return {"address": address, "running": False}


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    host = os.environ.get("TIMESGATE_HOST", "127.0.0.1")
    port = int(os.environ.get("TIMESGATE_PORT", "5120"))
    logging.basicConfig(
        level=os.environ.get("TIMESGATE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    logger.info("Starting Times Gate PC monitor on %s:%d", host, port)
    uvicorn.run("timesgate.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
