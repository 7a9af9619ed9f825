"""FastAPI host exposing the lens plugin."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, WebSocket

from . import get_version
from .config import Settings, get_settings
from .plugin import HostPlugin, QueryLensPlugin

PLUGIN_PATH = "/plugin/querylens"


def create_app(settings: Settings | None = None, plugin: HostPlugin | None = None) -> FastAPI:
    settings = settings or get_settings()
    lens = plugin or QueryLensPlugin(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await lens.startup()
        app.state.plugin = lens
        try:
            yield
        finally:
            await lens.shutdown()

    app = FastAPI(title="querylens", version=get_version(), lifespan=lifespan)

    @app.get("/healthz")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(f"{PLUGIN_PATH}/details")
    async def details() -> dict[str, object]:
        return {
            "details": lens.metadata().model_dump(),
            "permission": lens.required_permission().value,
        }

    @app.api_route(PLUGIN_PATH, methods=["GET", "POST"])
    async def serve(request: Request):
        return await lens.handle(request)

    @app.websocket(PLUGIN_PATH)
    async def serve_lens(websocket: WebSocket) -> None:
        await lens.handle(websocket)

    return app


__all__ = ["PLUGIN_PATH", "create_app"]
