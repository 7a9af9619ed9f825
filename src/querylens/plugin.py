"""Host-facing plugin contract and the query lens plugin."""

from __future__ import annotations

import html
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Sequence

from pydantic import BaseModel
from redis.asyncio import Redis
from starlette.requests import HTTPConnection, Request
from starlette.responses import HTMLResponse, PlainTextResponse, Response
from starlette.status import WS_1008_POLICY_VIOLATION, WS_1011_INTERNAL_ERROR
from starlette.websockets import WebSocket

from .backends import EntrezBackend, RetrievalBackend
from .cache import MemoryRetrievalCache, RedisRetrievalCache, RetrievalCache
from .config import Settings
from .dialects import DialectRegistry
from .errors import ResourceError
from .evaluation import Evaluator
from .resources import ResourceLoader
from .selection import CandidateSelector, QuickRankSelector
from .session import LensSession, LensTransport
from .utils import parse_id_list
from .variations import LocalVariationGenerator

logger = logging.getLogger(__name__)


class PluginPermission(str, Enum):
    public = "public"
    user = "user"
    admin = "admin"


class PluginDetails(BaseModel):
    title: str
    description: str
    author: str
    version: str
    project_url: str


class HostPlugin(ABC):
    """Capability contract a host server invokes; independent of any one framework."""

    @abstractmethod
    async def handle(self, connection: HTTPConnection) -> Response | None:
        """Serve a plain request (returning a response) or own a WebSocket until it closes."""

    @abstractmethod
    def required_permission(self) -> PluginPermission:
        """Lowest permission a caller needs to reach :meth:`handle`."""

    @abstractmethod
    def metadata(self) -> PluginDetails:
        """Descriptive details shown by the host."""

    async def startup(self) -> None:
        return None

    async def shutdown(self) -> None:
        return None


FORM_TEMPLATE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h1>{title}</h1>
<p>{description}</p>
<form id="querylens" method="post" data-lens-url="?lens=y">
<textarea name="query" rows="10" cols="80">{query}</textarea>
<select name="lang">{options}</select>
<button type="submit">Refine</button>
</form>
</body>
</html>
"""


class QueryLensPlugin(HostPlugin):
    """(Semi-)automatic query refinement and exploration."""

    def __init__(
        self,
        settings: Settings,
        *,
        backend: RetrievalBackend | None = None,
        selector: CandidateSelector | None = None,
        dialects: DialectRegistry | None = None,
        resource_loader: ResourceLoader | None = None,
        redis: Redis | None = None,
    ) -> None:
        self.settings = settings
        self.backend = backend or EntrezBackend(settings)
        self.selector = selector or QuickRankSelector(settings)
        self.dialects = dialects or DialectRegistry(settings.default_dialect)
        self.resource_loader = resource_loader or ResourceLoader(settings)
        self.redis = redis
        self._owns_redis = False
        self._shared_cache: RedisRetrievalCache | None = None

    def required_permission(self) -> PluginPermission:
        return PluginPermission.user

    def metadata(self) -> PluginDetails:
        return PluginDetails(
            title="QueryLens",
            description="(Semi)-Automatic query refinement and exploration.",
            author="Harry Scells",
            version="02.Oct.2019",
            project_url="https://github.com/hscells/querylens",
        )

    async def startup(self) -> None:
        if self.settings.cache_scope == "durable" and self.redis is None:
            self.redis = Redis.from_url(self.settings.redis_url)
            self._owns_redis = True

    async def shutdown(self) -> None:
        try:
            await self.backend.close()
        finally:
            if self._owns_redis and self.redis is not None:
                await self.redis.aclose()
                self.redis = None

    def session_cache(self) -> RetrievalCache:
        """The shared durable cache, or a fresh cache private to one session."""
        if self.settings.cache_scope == "session":
            return MemoryRetrievalCache()
        if self._shared_cache is None:
            if self.redis is None:
                raise ResourceError("durable cache requested before startup")
            self._shared_cache = RedisRetrievalCache(self.redis)
        return self._shared_cache

    def create_session(self, transport: LensTransport, relevant: Sequence[str]) -> LensSession:
        judgments = {doc_id: 1 for doc_id in relevant}
        evaluator = Evaluator(
            self.backend,
            self.session_cache(),
            judgments,
            mode=self.settings.evaluation_mode,
            snapshot=self.settings.snapshot,
        )
        return LensSession(
            transport,
            dialects=self.dialects,
            generator=LocalVariationGenerator(self.resource_loader.resources),
            selector=self.selector,
            evaluator=evaluator,
            poll_interval=self.settings.poll_interval_ms / 1000,
        )

    async def handle(self, connection: HTTPConnection) -> Response | None:
        try:
            await self.resource_loader.ensure_loaded()
        except ResourceError:
            logger.exception("could not load lens resources")
            if isinstance(connection, WebSocket):
                await connection.close(code=WS_1011_INTERNAL_ERROR)
                return None
            return PlainTextResponse("lens resources unavailable", status_code=500)

        if isinstance(connection, WebSocket):
            await self.serve_lens(connection)
            return None
        assert isinstance(connection, Request)
        return await self.render_form(connection)

    async def serve_lens(self, websocket: WebSocket) -> None:
        if websocket.query_params.get("lens") != "y":
            await websocket.close(code=WS_1008_POLICY_VIOLATION)
            return
        relevant = parse_id_list(websocket.query_params.getlist("relevant"))
        try:
            session = self.create_session(websocket, relevant)
        except ResourceError:
            logger.exception("could not start lens session")
            await websocket.close(code=WS_1011_INTERNAL_ERROR)
            return
        await websocket.accept()
        logger.info("lens session opened with %d relevant documents", len(relevant))
        await session.run()

    async def render_form(self, request: Request) -> HTMLResponse:
        # Posted fields only prefill the form; the pipeline runs over the socket.
        query = ""
        lang = self.dialects.default
        if request.method == "POST":
            form = await request.form()
            query = str(form.get("query") or "")
            lang = str(form.get("lang") or lang)
        options = "".join(
            '<option value="{0}"{1}>{0}</option>'.format(
                html.escape(tag), " selected" if tag == lang else ""
            )
            for tag in self.dialects.tags()
        )
        details = self.metadata()
        return HTMLResponse(
            FORM_TEMPLATE.format(
                title=html.escape(details.title),
                description=html.escape(details.description),
                query=html.escape(query),
                options=options,
            )
        )


__all__ = ["HostPlugin", "PluginPermission", "PluginDetails", "QueryLensPlugin"]
