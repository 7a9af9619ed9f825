from __future__ import annotations

from typing import Sequence

import pytest

from querylens.cache import MemoryRetrievalCache
from querylens.dialects import DialectRegistry
from querylens.errors import SelectionError
from querylens.evaluation import Evaluator
from querylens.query import Candidate, Keyword
from querylens.selection import CandidateSelector, StatisticsSource
from querylens.session import (
    MSG_EVALUATING,
    MSG_EVALUATING_ORIGINAL,
    MSG_EVALUATING_PREDICTIONS,
    MSG_GENERATING,
    MSG_PREDICTING,
    LensSession,
    SessionState,
)
from querylens.variations import LocalVariationGenerator

REQUEST = {"query": "diabetes AND insulin", "language": "medline"}


def message(text: str) -> dict[str, str]:
    return {"type": "message", "message": text}


def executing(progress: float) -> dict[str, object]:
    return {"type": "executing", "progress": progress}


def make_session(transport, backend, selector, resources=None, cache=None) -> LensSession:
    evaluator = Evaluator(backend, cache or MemoryRetrievalCache(), {"doc1": 1})
    return LensSession(
        transport,
        dialects=DialectRegistry(),
        generator=LocalVariationGenerator(resources),
        selector=selector,
        evaluator=evaluator,
        poll_interval=0,
    )


class OutsideSelector(CandidateSelector):
    async def select(
        self,
        seed: Candidate,
        pool: Sequence[Candidate],
        max_depth: int = 1,
        statistics: StatisticsSource | None = None,
    ) -> Candidate:
        return Candidate(query=Keyword(text="obesity"))


@pytest.mark.asyncio
async def test_session_streams_progress_then_sorted_queries(
    make_transport, backend, selector, resources
) -> None:
    transport = make_transport([REQUEST])
    await make_session(transport, backend, selector, resources).run()

    assert transport.sent[:-1] == [
        message(MSG_GENERATING),
        message(MSG_PREDICTING),
        message(MSG_EVALUATING),
        executing(0.0),
        executing(25.0),
        executing(50.0),
        executing(75.0),
        message(MSG_EVALUATING_PREDICTIONS),
        message(MSG_EVALUATING_ORIGINAL),
    ]
    final = transport.sent[-1]
    assert final["type"] == "queries"
    queries = final["queries"]
    assert [item["shape"] for item in queries] == [
        "circle", "triangle", "circle", "circle", "circle", "cross"
    ]
    assert [item["transformation"] for item in queries] == [
        "Logical Operator Replacement",
        "Logical Operator Replacement",
        "Clause Removal",
        "Clause Removal",
        "cui2vec Expansion",
        "Original",
    ]
    assert [item["f1"] for item in queries] == pytest.approx([0.4, 0.4, 0.5, 2 / 3, 1.0, 1.0])
    assert queries[0]["query"] == "diabetes.mp. or insulin.mp."
    assert queries[1]["query"] == "diabetes.mp. or insulin.mp."
    assert queries[-1]["query"] == "diabetes AND insulin"
    assert queries[-1]["num_transformations"] == 0
    assert queries[0]["num_transformations"] == 1
    assert transport.closed


@pytest.mark.asyncio
async def test_handle_request_returns_ascending_f1(
    make_transport, backend, selector, resources
) -> None:
    session = make_session(make_transport(), backend, selector, resources)
    queries = await session.handle_request("diabetes AND insulin", "medline")

    scores = [item.f1 for item in queries]
    assert scores == sorted(scores)
    assert len(queries) == 6
    assert sum(1 for item in queries if item.shape == "triangle") == 1
    assert sum(1 for item in queries if item.shape == "cross") == 1
    assert session.state is SessionState.awaiting_request


@pytest.mark.asyncio
async def test_unknown_dialect_falls_back_and_empty_pool_selects_seed(
    make_transport, backend, selector
) -> None:
    transport = make_transport([{"query": "insulin", "language": "xyz"}])
    await make_session(transport, backend, selector).run()

    assert transport.sent[:-1] == [
        message(MSG_GENERATING),
        message(MSG_PREDICTING),
        message(MSG_EVALUATING),
        message(MSG_EVALUATING_PREDICTIONS),
        message(MSG_EVALUATING_ORIGINAL),
    ]
    queries = transport.sent[-1]["queries"]
    assert [(item["shape"], item["query"]) for item in queries] == [
        ("triangle", "insulin.mp."),
        ("cross", "insulin"),
    ]
    assert queries[0]["transformation"] == "Original"
    assert selector.calls[0][1] == []


@pytest.mark.asyncio
async def test_selector_reads_statistics_through_the_session_evaluator(
    make_transport, backend, selector, resources
) -> None:
    session = make_session(make_transport(), backend, selector, resources)
    await session.handle_request("diabetes AND insulin", "medline")
    assert selector.calls[0][3] is session.evaluator


@pytest.mark.asyncio
async def test_missing_language_uses_default_dialect(make_transport, backend, selector) -> None:
    transport = make_transport([{"query": "insulin.tw."}])
    await make_session(transport, backend, selector).run()
    queries = transport.sent[-1]["queries"]
    assert [item["query"] for item in queries] == [
        "insulin.ti.",
        "insulin.ab.",
        "insulin.ti.",
        "insulin.tw.",
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "inbound",
    [
        {"nope": 1},
        {"query": 3},
        ValueError("not json"),
        RuntimeError("socket gone"),
        KeyError("text"),
    ],
)
async def test_unreadable_requests_close_without_reply(
    make_transport, backend, selector, inbound
) -> None:
    transport = make_transport([inbound, REQUEST])
    await make_session(transport, backend, selector).run()
    assert transport.sent == []
    assert transport.closed
    assert backend.calls == []


@pytest.mark.asyncio
async def test_compile_error_closes_before_any_message(make_transport, backend, selector) -> None:
    transport = make_transport([{"query": "(diabetes and", "language": "medline"}])
    session = make_session(transport, backend, selector)
    await session.run()
    assert transport.sent == []
    assert transport.closed
    assert session.state is SessionState.closed


@pytest.mark.asyncio
async def test_selector_failure_closes_after_prediction_message(
    make_transport, make_selector, backend, resources
) -> None:
    transport = make_transport([REQUEST])
    selector = make_selector(error=SelectionError("ranker down"))
    await make_session(transport, backend, selector, resources).run()
    assert transport.sent == [message(MSG_GENERATING), message(MSG_PREDICTING)]
    assert transport.closed


@pytest.mark.asyncio
async def test_selection_outside_the_pool_is_rejected(make_transport, backend, resources) -> None:
    transport = make_transport([REQUEST])
    await make_session(transport, backend, OutsideSelector(), resources).run()
    assert transport.sent == [message(MSG_GENERATING), message(MSG_PREDICTING)]
    assert transport.closed


@pytest.mark.asyncio
async def test_backend_failure_midway_stops_the_stream(
    make_transport, make_backend, selector, resources
) -> None:
    transport = make_transport([REQUEST])
    backend = make_backend(fail_on="diabetes mellitus")
    await make_session(transport, backend, selector, resources).run()
    assert transport.sent == [
        message(MSG_GENERATING),
        message(MSG_PREDICTING),
        message(MSG_EVALUATING),
        executing(0.0),
        executing(25.0),
        executing(50.0),
    ]
    assert transport.closed


@pytest.mark.asyncio
async def test_write_failure_ends_the_session(make_transport, backend, selector) -> None:
    transport = make_transport([REQUEST], fail_on_send=1)
    await make_session(transport, backend, selector).run()
    assert transport.sent == [message(MSG_GENERATING)]
    assert transport.closed


@pytest.mark.asyncio
async def test_repeated_requests_reuse_cached_fragments(
    make_transport, backend, selector, resources
) -> None:
    transport = make_transport([REQUEST, REQUEST])
    await make_session(transport, backend, selector, resources).run()

    finals = [item for item in transport.sent if item["type"] == "queries"]
    assert len(finals) == 2
    assert finals[0] == finals[1]
    assert len(transport.sent) == 20
    assert sorted(text for text, _pool in backend.calls) == [
        "diabetes",
        "diabetes mellitus",
        "insulin",
    ]


@pytest.mark.asyncio
async def test_disconnect_closes_quietly(make_transport, backend, selector) -> None:
    transport = make_transport([])
    session = make_session(transport, backend, selector)
    await session.run()
    assert transport.sent == []
    assert transport.closed
    await session.close()
