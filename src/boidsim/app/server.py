from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Dict, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import SimulationConfig
from ..sim.core.flock import Flock
from ..sim.core.modes import FlockMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class ClientAudioSource:
    """Band levels pushed over HTTP by a client that does its own capture."""

    def __init__(self) -> None:
        self.active = True

    def stop(self) -> None:
        self.active = False


class SimulationController:
    """Drives one flock on an asyncio loop and fans snapshots out to websocket clients.

    Each client has a cursor (last tick sent). Queued snapshots are dropped
    once every connected client is past them or acknowledges them, and the
    queue never holds more than ``max_queued`` entries.
    """

    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1, max_queued: int = 120):
        self.config = config
        self.flock = Flock(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.tick = 0
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._cursors: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, max_queued))
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self) -> None:
        async with self._lock:
            self.flock.reset()
            self.tick = 0
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._cursors:
            self._cursors[client] = -1
        await self._broadcast_snapshot()

    async def apply(self, action: str, **kwargs: Any) -> Any:
        """Run a flock mutation between ticks."""
        async with self._lock:
            return getattr(self.flock, action)(**kwargs)

    async def push_audio_levels(self, bass: float, mid: float, treble: float) -> None:
        async with self._lock:
            flock = self.flock
            if flock.mode != FlockMode.SOUND:
                raise ValueError(f"audio levels need sound mode, current mode is {flock.mode.value}")
            if flock.modes.audio_source is None:
                flock.attach_audio_source(ClientAudioSource())
                logger.info("client audio source attached")
            flock.set_audio_levels(bass, mid, treble)

    async def connect(self, client: WebSocket) -> None:
        self.clients.add(client)
        self._cursors[client] = -1
        await self._send_pending(client)

    def disconnect(self, client: WebSocket) -> None:
        self.clients.discard(client)
        self._cursors.pop(client, None)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.frame_ms / 1000.0 / self.speed_multiplier)
            if not self.running:
                continue
            async with self._lock:
                self.flock.step(self.tick)
                self.tick += 1
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.flock.snapshot(self.tick)
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "mode": snapshot.mode,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "world": asdict(snapshot.world),
                "metadata": asdict(snapshot.metadata),
                "scene": asdict(snapshot.scene),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending(self, client: WebSocket) -> None:
        cursor = self._cursors.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > cursor]
        for item in pending:
            await client.send_text(item.payload)
            cursor = item.tick
        self._cursors[client] = cursor

    async def _drop_delivered(self) -> None:
        if not self._cursors:
            return
        delivered = min(self._cursors.values())
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= delivered:
                self._snapshot_queue.popleft()

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.disconnect(client)
        if stale:
            logger.info("dropped %d disconnected client(s)", len(stale))
        await self._drop_delivered()


app = FastAPI(title="Boids Flocking Simulation")
controller = SimulationController(SimulationConfig())


def _number(payload: dict, key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"{key} must be a number") from exc


async def _apply_or_400(action: str, **kwargs: Any) -> Any:
    try:
        return await controller.apply(action, **kwargs)
    except (ValueError, TypeError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.flock.snapshot(controller.tick)
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "mode": snapshot.mode,
            "population": len(controller.flock.agents),
            "metrics": asdict(snapshot.metrics),
            "params": {key: getattr(value, "value", value) for key, value in asdict(controller.flock.params).items()},
            "history": [asdict(sample) for sample in controller.flock.history],
        }
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = _number(payload, "multiplier", 1.0)
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/params")
async def update_params(payload: dict) -> JSONResponse:
    await _apply_or_400("update_params", **payload)
    return JSONResponse({"updated": sorted(payload)})


@app.post("/api/population")
async def set_population(payload: dict) -> JSONResponse:
    count = _number(payload, "count", 0)
    await _apply_or_400("set_population", count=int(count))
    return JSONResponse({"population": len(controller.flock.agents)})


@app.post("/api/mode")
async def set_mode(payload: dict) -> JSONResponse:
    mode = await _apply_or_400("set_mode", mode=str(payload.get("mode", "")))
    return JSONResponse({"mode": mode.value})


@app.post("/api/preset")
async def apply_preset(payload: dict) -> JSONResponse:
    name = str(payload.get("name", ""))
    await _apply_or_400("apply_preset", name=name)
    return JSONResponse({"preset": name})


@app.post("/api/audio")
async def set_audio_levels(payload: dict) -> JSONResponse:
    levels = {band: _number(payload, band, 0.0) for band in ("bass", "mid", "treble")}
    try:
        await controller.push_audio_levels(**levels)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"ok": True, **levels})


@app.post("/api/pointer")
async def set_pointer(payload: dict) -> JSONResponse:
    if payload.get("x") is None or payload.get("y") is None:
        await _apply_or_400("clear_pointer")
    else:
        await _apply_or_400("set_pointer", x=_number(payload, "x", 0.0), y=_number(payload, "y", 0.0))
    return JSONResponse({"ok": True})


@app.post("/api/obstacles")
async def add_obstacle(payload: dict) -> JSONResponse:
    action = "paint_obstacle" if payload.get("drag") else "add_obstacle"
    obstacle = await _apply_or_400(
        action,
        x=_number(payload, "x", 0.0),
        y=_number(payload, "y", 0.0),
        radius=_number(payload, "radius", 20.0),
        kind=str(payload.get("kind", "static")),
    )
    return JSONResponse({"placed": obstacle is not None, "count": len(controller.flock.obstacles)})


@app.post("/api/obstacles/maze")
async def generate_maze() -> JSONResponse:
    await _apply_or_400("generate_maze")
    return JSONResponse({"count": len(controller.flock.obstacles)})


@app.post("/api/obstacles/follow")
async def set_follow_obstacle(payload: dict) -> JSONResponse:
    enabled = payload.get("enabled")
    if not isinstance(enabled, bool):
        raise HTTPException(status_code=400, detail="enabled must be a boolean")
    obstacle = await _apply_or_400("set_follow_obstacle", enabled=enabled)
    return JSONResponse({"enabled": obstacle is not None, "count": len(controller.flock.obstacles)})


@app.delete("/api/obstacles")
async def remove_obstacle(x: float | None = None, y: float | None = None) -> JSONResponse:
    if x is None or y is None:
        await _apply_or_400("clear_obstacles")
        return JSONResponse({"removed": True, "count": 0})
    removed = await _apply_or_400("remove_obstacle_at", x=x, y=y)
    return JSONResponse({"removed": removed, "count": len(controller.flock.obstacles)})


@app.post("/api/select")
async def select_agent(payload: dict) -> JSONResponse:
    agent = await _apply_or_400("select_at", x=_number(payload, "x", 0.0), y=_number(payload, "y", 0.0))
    return JSONResponse({"selected": None if agent is None else agent.id})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    await controller.connect(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type")
            if kind == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
            elif kind == "pointer":
                x = payload.get("x")
                y = payload.get("y")
                if isinstance(x, (int, float)) and isinstance(y, (int, float)):
                    await controller.apply("set_pointer", x=float(x), y=float(y))
                else:
                    await controller.apply("clear_pointer")
    except WebSocketDisconnect:
        controller.disconnect(websocket)


__all__ = ["app", "controller"]
