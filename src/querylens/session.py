"""Per-connection refine, select, evaluate and report pipeline."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Protocol, Sequence

from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from .dialects import DialectRegistry
from .errors import ProtocolError, QueryLensError, SelectionError
from .evaluation import Evaluator
from .models import (
    SHAPE_ORIGINAL,
    SHAPE_SELECTION,
    SHAPE_VARIATION,
    ExecutingResponse,
    LensRequest,
    LensResponse,
    MessageResponse,
    QueriesResponse,
    QueryVariation,
)
from .query import Candidate
from .selection import CandidateSelector
from .transformations import DEFAULT_OPERATORS, TransformationKind
from .variations import VariationGenerator

logger = logging.getLogger(__name__)

MSG_GENERATING = "Generating variations."
MSG_PREDICTING = "Predicting most effective variation."
MSG_EVALUATING = "Evaluating queries."
MSG_EVALUATING_PREDICTIONS = "Evaluating predictions."
MSG_EVALUATING_ORIGINAL = "Evaluating original query."


class LensTransport(Protocol):
    """The slice of a Starlette ``WebSocket`` a session relies on."""

    async def receive_json(self) -> Any: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class SessionState(str, Enum):
    awaiting_request = "awaiting_request"
    compiling = "compiling"
    generating_variations = "generating_variations"
    selecting_best = "selecting_best"
    evaluating_variations = "evaluating_variations"
    evaluating_selection = "evaluating_selection"
    evaluating_original = "evaluating_original"
    reporting_results = "reporting_results"
    closed = "closed"


class LensSession:
    """
    Drives one client connection.

    Requests are handled one at a time: the session waits for a message,
    runs every stage to completion, then waits again. Any failure closes the
    connection; nothing is retried and no error is sent to the client.
    """

    def __init__(
        self,
        transport: LensTransport,
        *,
        dialects: DialectRegistry,
        generator: VariationGenerator,
        selector: CandidateSelector,
        evaluator: Evaluator,
        operators: Sequence[TransformationKind] = DEFAULT_OPERATORS,
        poll_interval: float = 0.001,
    ) -> None:
        self.transport = transport
        self.dialects = dialects
        self.generator = generator
        self.selector = selector
        self.evaluator = evaluator
        self.operators = tuple(operators)
        self.poll_interval = poll_interval
        self.state = SessionState.awaiting_request

    # ------------------------------------------------------------------ #
    async def run(self) -> None:
        try:
            while True:
                request = await self.receive()
                await self.handle_request(request.query, request.language)
                await asyncio.sleep(self.poll_interval)
        except WebSocketDisconnect as exc:
            logger.info("lens client disconnected (code=%s)", exc.code)
        except QueryLensError as exc:
            logger.warning("closing lens session in state %s: %s", self.state.value, exc)
        finally:
            await self.close()

    async def close(self) -> None:
        if self.state is SessionState.closed:
            return
        self.state = SessionState.closed
        try:
            await self.transport.close()
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            # The peer is already gone.
            logger.debug("lens socket already closed: %s", exc)

    async def receive(self) -> LensRequest:
        try:
            data = await self.transport.receive_json()
        except WebSocketDisconnect:
            raise
        except (KeyError, ValueError, RuntimeError, OSError) as exc:
            # Starlette raises KeyError for a binary frame.
            raise ProtocolError(f"read: {exc!r}") from exc
        try:
            return LensRequest.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError(f"read: malformed request: {exc}") from exc

    async def send(self, response: LensResponse) -> None:
        try:
            await self.transport.send_json(response.model_dump(exclude_none=True))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise ProtocolError(f"write: {exc}") from exc

    async def send_message(self, message: str) -> None:
        await self.send(MessageResponse(message=message))

    # ------------------------------------------------------------------ #
    async def handle_request(self, raw_query: str, dialect_tag: str | None) -> list[QueryVariation]:
        self.state = SessionState.compiling
        tag, dialect = self.dialects.resolve(dialect_tag)
        logger.info("received a query %r in format %s", raw_query, tag)
        seed = Candidate(query=dialect.compile(raw_query))

        self.state = SessionState.generating_variations
        await self.send_message(MSG_GENERATING)
        variations = await self.generator.generate(seed, self.operators)

        self.state = SessionState.selecting_best
        await self.send_message(MSG_PREDICTING)
        selected = await self.selector.select(
            seed, variations, max_depth=1, statistics=self.evaluator
        )
        if variations and selected not in variations:
            raise SelectionError("selector returned a candidate outside the pool")

        self.state = SessionState.evaluating_variations
        await self.send_message(MSG_EVALUATING)
        queries: list[QueryVariation] = []
        total = len(variations)
        for index, candidate in enumerate(variations):
            text = dialect.render(candidate.query)
            queries.append(await self.evaluator.evaluate(candidate, text, SHAPE_VARIATION))
            await self.send(ExecutingResponse(progress=index / total * 100))

        self.state = SessionState.evaluating_selection
        await self.send_message(MSG_EVALUATING_PREDICTIONS)
        queries.append(
            await self.evaluator.evaluate(selected, dialect.render(selected.query), SHAPE_SELECTION)
        )

        self.state = SessionState.evaluating_original
        await self.send_message(MSG_EVALUATING_ORIGINAL)
        # The original is shown exactly as the user typed it.
        queries.append(await self.evaluator.evaluate(seed, raw_query, SHAPE_ORIGINAL))

        self.state = SessionState.reporting_results
        queries.sort(key=lambda item: item.f1)
        await self.send(QueriesResponse(queries=queries))
        self.state = SessionState.awaiting_request
        return queries


__all__ = ["LensSession", "LensTransport", "SessionState"]
