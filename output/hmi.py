# -- coding: utf-8 --
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from aiohttp import web

from core.contracts import HistoryEntry, IntervalResult, LiveStatus
from core.lifecycle import LoopRunner, run_async_cleanup
from output.manager import entry_to_dict
from trigger.gateway import (
    CMD_ARM,
    CMD_CLEAR_HISTORY,
    CMD_PLACE_ZONE,
    CMD_RESET,
    CMD_SETUP,
)

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from output.manager import OutputManager
    from trigger.gateway import CommandGateway


class AppContextLike(Protocol):
    @property
    def command_gateway(self) -> "CommandGateway": ...

    @property
    def outputs(self) -> "OutputManager": ...

    @property
    def placeable_zones(self) -> tuple[str, ...]: ...


L = logging.getLogger("reflex_runtime.output.hmi")


def serialize_result(result: IntervalResult | None) -> dict[str, Any] | None:
    if result is None:
        return None
    return {
        "interval_ms": int(result.interval_ms),
        "valid": result.valid,
        "false_start": result.false_start,
    }


def serialize_status(status: LiveStatus, history: list[HistoryEntry], max_records: int) -> dict[str, Any]:
    return {
        "state": status.state,
        "variant": status.variant,
        "scores": {k: round(float(v), 2) for k, v in status.scores.items()},
        "bars": {k: round(float(v), 1) for k, v in status.bars.items()},
        "triggered": dict(status.triggered),
        "messages": dict(status.messages),
        "zones": dict(status.zones),
        "result": serialize_result(status.result),
        "error": status.error,
        "history": [entry_to_dict(e) for e in history],
        "max_records": max_records,
    }


def _parse_point(body: Any) -> tuple[int, int]:
    if not isinstance(body, dict):
        raise ValueError("body must be a JSON object with x and y")
    point = []
    for key in ("x", "y"):
        raw = body.get(key)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValueError(f"{key} must be a number")
        if raw < 0:
            raise ValueError(f"{key} must be >= 0")
        point.append(int(raw))
    return point[0], point[1]


async def _read_json(request) -> Any:
    if not request.can_read_body:
        return {}
    try:
        return await request.json()
    except ValueError as e:
        raise web.HTTPBadRequest(text=f"invalid JSON body: {e}") from e


class _ApiServer:
    def __init__(
        self,
        host: str,
        port: int,
        context: AppContextLike,
        *,
        loop_runner: LoopRunner,
    ):
        self.host = host
        self.port = port
        self.context = context
        self.app = web.Application()
        self._setup_routes()
        self._runner = None
        self._site = None
        self._started = False
        self._loop_runner = loop_runner

    def _setup_routes(self):
        app = self.app
        ctx = self.context

        def _bad_request(message: str):
            return web.json_response({"error": message}, status=400)

        def _submit(name: str, payload: dict[str, Any] | None = None):
            ok = ctx.command_gateway.submit(name, payload)
            return web.json_response({"accepted": ok}, status=202 if ok else 200)

        async def status(_request):
            outputs = ctx.outputs
            payload = serialize_status(
                outputs.latest_status(), outputs.latest_records, outputs.max_records
            )
            return web.json_response(payload)

        async def arm(_request):
            return _submit(CMD_ARM)

        async def reset(_request):
            return _submit(CMD_RESET)

        async def setup(_request):
            return _submit(CMD_SETUP)

        async def place_zone(request):
            which = request.match_info["which"]
            if which not in ctx.placeable_zones:
                return _bad_request(
                    f"zone '{which}' is not placeable; expected one of {list(ctx.placeable_zones)}"
                )
            try:
                x, y = _parse_point(await _read_json(request))
            except ValueError as e:
                return _bad_request(str(e))
            return _submit(CMD_PLACE_ZONE, {"which": which, "x": x, "y": y})

        async def clear_history(request):
            body = await _read_json(request)
            confirmed = isinstance(body, dict) and body.get("confirm") is True
            if not confirmed:
                return _bad_request('history clear requires {"confirm": true}')
            return _submit(CMD_CLEAR_HISTORY, {"confirm": True})

        app.router.add_get("/status", status)
        app.router.add_post("/arm", arm)
        app.router.add_post("/reset", reset)
        app.router.add_post("/setup", setup)
        app.router.add_post("/zones/{which}", place_zone)
        app.router.add_post("/history/clear", clear_history)

    def start(self):
        if self._started:
            return
        try:
            self._loop_runner.run_async(self._serve(), timeout=1.0)
        except Exception:
            self.stop()
            raise
        self._started = True

    async def _serve(self):
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        L.info("HMI web service running @ http://%s:%d", self.host, self.port)

    def stop(self):
        async def _cleanup():
            if self._runner:
                await self._runner.cleanup()
            self._runner = None
            self._site = None

        run_async_cleanup(
            _cleanup(),
            timeout=0.5,
            loop_runner=self._loop_runner,
        )
        self._started = False
        L.info("HMI web service stopped")

    def raise_if_failed(self):
        if not self._started:
            return
        if self._runner is None or self._site is None:
            raise RuntimeError("HMI web service stopped unexpectedly")


class HmiOutput:
    def __init__(
        self,
        host: str,
        port: int,
        context: AppContextLike,
        *,
        loop_runner: LoopRunner,
    ):
        self.server = _ApiServer(host, port, context, loop_runner=loop_runner)

    @property
    def app(self) -> web.Application:
        return self.server.app

    def start(self):
        self.server.start()

    def stop(self):
        self.server.stop()

    def publish(self, result: IntervalResult, entry: HistoryEntry):
        # HMI pulls data via HTTP; no push needed.
        _ = result, entry
        return None

    def raise_if_failed(self):
        self.server.raise_if_failed()


__all__ = ["HmiOutput", "serialize_status", "serialize_result"]
