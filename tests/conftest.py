from __future__ import annotations

from typing import Any, Sequence

import pytest
from starlette.websockets import WebSocketDisconnect

from querylens.backends import RetrievalBackend
from querylens.config import Settings
from querylens.errors import RetrievalError
from querylens.query import Candidate, Keyword
from querylens.resources import EmbeddingResources
from querylens.selection import CandidateSelector

INDEX: dict[str, list[str]] = {
    "diabetes": ["doc1", "doc2", "doc3"],
    "insulin": ["doc1", "doc4"],
    "diabetes mellitus": ["doc1", "doc5"],
    "obesity": ["doc2", "doc6"],
}


class FakeBackend(RetrievalBackend):
    """Looks keywords up by lowercased text, ignoring fields."""

    def __init__(self, index: dict[str, list[str]] | None = None, fail_on: str | None = None) -> None:
        super().__init__(Settings())
        self.index = INDEX if index is None else index
        self.fail_on = fail_on
        self.calls: list[tuple[str, tuple[str, ...] | None]] = []

    async def search(self, keyword: Keyword, pool: Sequence[str] | None = None) -> list[str]:
        self.calls.append((keyword.text, tuple(pool) if pool is not None else None))
        if self.fail_on is not None and keyword.text == self.fail_on:
            raise RetrievalError(f"backend down for {keyword.text}")
        docs = list(self.index.get(keyword.text.lower(), []))
        if pool is not None:
            docs = [doc_id for doc_id in docs if doc_id in pool]
        return docs


class FakeSelector(CandidateSelector):
    """Picks the pool entry at ``index``; returns the seed for an empty pool."""

    def __init__(self, index: int = 0, error: Exception | None = None) -> None:
        self.index = index
        self.error = error
        self.calls: list[tuple[Candidate, list[Candidate], int, Any]] = []

    async def select(
        self,
        seed: Candidate,
        pool: Sequence[Candidate],
        max_depth: int = 1,
        statistics: Any = None,
    ) -> Candidate:
        self.calls.append((seed, list(pool), max_depth, statistics))
        if self.error is not None:
            raise self.error
        if not pool:
            return seed
        return pool[self.index]


class FakeTransport:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self, inbox: list[Any] | None = None, fail_on_send: int | None = None) -> None:
        self.inbox = list(inbox or [])
        self.sent: list[dict[str, Any]] = []
        self.fail_on_send = fail_on_send
        self.closed = False

    async def receive_json(self) -> Any:
        if not self.inbox:
            raise WebSocketDisconnect(code=1000)
        item = self.inbox.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def send_json(self, data: Any) -> None:
        if self.fail_on_send is not None and len(self.sent) >= self.fail_on_send:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        if self.closed:
            raise RuntimeError("already closed")
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(cache_scope="session", evaluation_mode="collection", poll_interval_ms=0)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def selector() -> FakeSelector:
    return FakeSelector()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def make_selector():
    return FakeSelector


@pytest.fixture
def resources() -> EmbeddingResources:
    return EmbeddingResources(
        neighbours={"C0011849": [("C0011860", 0.91), ("C0021641", 0.42)]},
        names={"C0011860": "diabetes mellitus", "C0021641": "insulin"},
        concepts={"diabetes": "C0011849"},
        mesh_parents={"diabetes mellitus, type 2": "Diabetes Mellitus"},
    )


@pytest.fixture
def resource_files(tmp_path) -> Settings:
    embeddings = tmp_path / "cui2vec_neighbours.csv"
    embeddings.write_text("C0011849,C0011860,0.91\nC0011849,C0021641,0.42\n", encoding="utf-8")
    mapping = tmp_path / "cui2vec_mapping.csv"
    mapping.write_text("C0011860,diabetes mellitus\nC0021641,insulin\n", encoding="utf-8")
    quiche = tmp_path / "quiche.csv"
    quiche.write_text("# term,cui\ndiabetes,C0011849\n", encoding="utf-8")
    parents = tmp_path / "mesh_parents.csv"
    parents.write_text('"Diabetes Mellitus, Type 2",Diabetes Mellitus\n', encoding="utf-8")
    return Settings(
        cache_scope="session",
        poll_interval_ms=0,
        cui2vec_embeddings_path=str(embeddings),
        cui2vec_mapping_path=str(mapping),
        quiche_path=str(quiche),
        mesh_parents_path=str(parents),
    )
