"""
Servers API: FastAPI service exposing game server query, RCON and
aggregated status to the rest of the portal.
"""

import asyncio
import logging
import os
from contextlib import suppress

from fastapi import Depends, FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect

from gsclient import (
    ClientRegistry, GameServerError, QueryClientFactory, RconClientFactory,
    ServerEndpoint, StatusHelperRegistry, UnsupportedGameTypeError,
)

from .config import SERVICE_SECRET, STATUS_MAX_AGE, STATUS_POLL_INTERVAL, load_servers
from .monitor import StatusMonitor
from .schemas import (
    CommandResult, QueryStatusResponse, RconPlayerResponse, SayRequest,
    ServerInfo, ServerStatusResponse, SlotRequest,
)
from .websocket_hub import WebSocketHub

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
)
logger = logging.getLogger("servers_api")


servers = load_servers()
query_clients = ClientRegistry(QueryClientFactory())
rcon_clients = ClientRegistry(RconClientFactory())
status_helpers = StatusHelperRegistry(query_clients, rcon_clients)
websocket_hub = WebSocketHub()
monitor = StatusMonitor(servers, status_helpers, websocket_hub, interval=STATUS_POLL_INTERVAL)
monitor_task: asyncio.Task | None = None


app = FastAPI(title="Game Servers API", version="0.1.0")


# ── Helpers ──────────────────────────────────────────────────────

def verify_service_secret(x_service_secret: str = Header("", alias="X-Service-Secret")):
    if not SERVICE_SECRET or x_service_secret != SERVICE_SECRET:
        raise HTTPException(status_code=403, detail="Invalid service secret")


def _get_server(server_id: str) -> ServerEndpoint:
    endpoint = servers.get(server_id)
    if endpoint is None:
        raise HTTPException(status_code=404, detail="Server not found")
    return endpoint


def _get_rcon_server(server_id: str) -> ServerEndpoint:
    endpoint = _get_server(server_id)
    if not endpoint.rcon_password:
        raise HTTPException(status_code=400, detail="RCON is not configured for this server")
    return endpoint


def _call(endpoint: ServerEndpoint, fn):
    """Run a client call, mapping client errors onto HTTP errors."""
    try:
        return fn()
    except UnsupportedGameTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (GameServerError, OSError) as e:
        logger.error(f"[{endpoint.key}] Game server call failed: {e}")
        raise HTTPException(status_code=502, detail=f"Game server error: {e}")


def _rcon_command(server_id: str, method: str, *args) -> dict:
    endpoint = _get_rcon_server(server_id)
    result = _call(endpoint, lambda: getattr(rcon_clients.get(endpoint), method)(*args))
    return {"result": result or ""}


# ── Background monitor ───────────────────────────────────────────

@app.on_event("startup")
async def _startup_status_monitor():
    global monitor_task
    if not servers or STATUS_POLL_INTERVAL <= 0:
        return
    if monitor_task is None or monitor_task.done():
        monitor_task = asyncio.create_task(monitor.run_loop())


@app.on_event("shutdown")
async def _shutdown_status_monitor():
    global monitor_task
    if monitor_task:
        monitor_task.cancel()
        with suppress(asyncio.CancelledError):
            await monitor_task
        monitor_task = None
    await asyncio.to_thread(status_helpers.close_all)


@app.websocket("/ws/status")
async def websocket_status(ws: WebSocket):
    # ?server=<id> may repeat; unknown ids are ignored, none means all servers
    requested = [s for s in ws.query_params.getlist("server") if s in servers]
    await websocket_hub.subscribe(ws, requested)
    watched = sorted(requested) if requested else sorted(servers)
    await ws.send_json({"event_type": "connected", "data": {"servers": watched}})
    try:
        while True:
            msg = await ws.receive_text()
            if msg.lower() == "ping":
                await ws.send_json({"event_type": "pong", "data": {"ok": True}})
    except WebSocketDisconnect:
        await websocket_hub.unsubscribe(ws)


# ── Servers ──────────────────────────────────────────────────────

@app.get("/api/health")
def health():
    return {"status": "ok", "service": "servers-api", "servers": len(servers)}


@app.get("/api/servers", response_model=list[ServerInfo])
def list_servers():
    return [
        {
            "id": server_id,
            "game_type": endpoint.game_type.name,
            "host": endpoint.hostname,
            "port": endpoint.query_port,
            "rcon_enabled": bool(endpoint.rcon_password),
        }
        for server_id, endpoint in servers.items()
    ]


@app.get("/api/query/{server_id}/status", response_model=QueryStatusResponse)
def query_status(server_id: str):
    endpoint = _get_server(server_id)
    response = _call(endpoint, lambda: query_clients.get(endpoint).get_server_status())
    return response.to_dict()


@app.get("/api/servers/{server_id}/status", response_model=ServerStatusResponse)
def server_status(server_id: str):
    endpoint = _get_server(server_id)
    cached = monitor.snapshot(endpoint.key, max_age=STATUS_MAX_AGE)
    if cached is not None:
        return cached

    status = _call(endpoint, lambda: status_helpers.get(endpoint).get_server_status())
    payload = status.to_dict()
    monitor.record(endpoint.key, payload)
    return payload


# ── RCON ─────────────────────────────────────────────────────────

@app.get("/api/rcon/{server_id}/status", response_model=list[RconPlayerResponse],
         dependencies=[Depends(verify_service_secret)])
def rcon_status(server_id: str):
    endpoint = _get_rcon_server(server_id)
    players = _call(endpoint, lambda: rcon_clients.get(endpoint).get_players())
    return [
        {
            "num": p.slot_num,
            "guid": p.guid,
            "name": p.name,
            "ip_address": p.ip_address,
            "ping": p.ping,
            "rate": p.rate,
        }
        for p in players
    ]


@app.post("/api/rcon/{server_id}/say", response_model=CommandResult,
          dependencies=[Depends(verify_service_secret)])
def rcon_say(server_id: str, req: SayRequest):
    return _rcon_command(server_id, "say", req.message)


@app.post("/api/rcon/{server_id}/kick", response_model=CommandResult,
          dependencies=[Depends(verify_service_secret)])
def rcon_kick(server_id: str, req: SlotRequest):
    return _rcon_command(server_id, "kick_player", req.slot)


@app.post("/api/rcon/{server_id}/ban", response_model=CommandResult,
          dependencies=[Depends(verify_service_secret)])
def rcon_ban(server_id: str, req: SlotRequest):
    return _rcon_command(server_id, "ban_player", req.slot)


@app.post("/api/rcon/{server_id}/restart-map", response_model=CommandResult,
          dependencies=[Depends(verify_service_secret)])
def rcon_restart_map(server_id: str):
    return _rcon_command(server_id, "restart_map")


@app.post("/api/rcon/{server_id}/next-map", response_model=CommandResult,
          dependencies=[Depends(verify_service_secret)])
def rcon_next_map(server_id: str):
    return _rcon_command(server_id, "next_map")


@app.post("/api/rcon/{server_id}/restart", response_model=CommandResult,
          dependencies=[Depends(verify_service_secret)])
def rcon_restart(server_id: str):
    return _rcon_command(server_id, "restart_server")


@app.get("/api/rcon/{server_id}/map-rotation", response_model=CommandResult,
         dependencies=[Depends(verify_service_secret)])
def rcon_map_rotation(server_id: str):
    return _rcon_command(server_id, "map_rotation")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
