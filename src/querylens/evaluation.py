"""Retrieval of candidate queries through the cache, and their scoring."""

from __future__ import annotations

import logging
from typing import Mapping

from .backends import RetrievalBackend
from .cache import CacheKey, RetrievalCache
from .config import EvaluationMode
from .metrics import score
from .models import QueryVariation, Shape
from .query import BooleanQuery, Candidate, Keyword, iter_keywords
from .utils import hash_pool

logger = logging.getLogger(__name__)


def _doc_order(doc_id: str) -> tuple[int, int, str]:
    if doc_id.isdigit():
        return (0, int(doc_id), doc_id)
    return (1, 0, doc_id)


class Evaluator:
    """
    Evaluates query trees as a logical tree over cached atom results.

    Each keyword is a fragment fetched once per cache scope; boolean nodes
    combine their children's sets (``not`` subtracts every later child from
    the first).
    """

    def __init__(
        self,
        backend: RetrievalBackend,
        cache: RetrievalCache,
        judgments: Mapping[str, int],
        *,
        mode: EvaluationMode = "collection",
        snapshot: str = "pubmed",
    ) -> None:
        self.backend = backend
        self.cache = cache
        self.judgments = dict(judgments)
        self.mode = mode
        if mode == "pool":
            self.pool: list[str] | None = sorted(self.judgments, key=_doc_order)
            self.scope = f"pool:{hash_pool(self.judgments)}"
        else:
            self.pool = None
            self.scope = f"collection:{snapshot}"

    async def _fragment(self, keyword: Keyword) -> set[str]:
        key = CacheKey(keyword.fingerprint(), self.scope)
        docs = await self.cache.get_or_compute(
            key, lambda: self.backend.search(keyword, self.pool)
        )
        return set(docs)

    async def _documents(self, node: Keyword | BooleanQuery) -> set[str]:
        if isinstance(node, Keyword):
            return await self._fragment(node)
        # Children run one after another; sessions never overlap retrievals.
        sets = [await self._documents(child) for child in node.children]
        if node.operator == "and":
            return set.intersection(*sets)
        if node.operator == "or":
            return set.union(*sets)
        return sets[0].difference(*sets[1:])

    async def retrieve(self, query: Keyword | BooleanQuery) -> list[str]:
        return sorted(await self._documents(query), key=_doc_order)

    async def fragment_sizes(self, query: Keyword | BooleanQuery) -> list[int]:
        """Result-set size of every keyword in ``query``, in tree order."""
        return [len(await self._fragment(keyword)) for keyword in iter_keywords(query)]

    async def evaluate(self, candidate: Candidate, text: str, shape: Shape) -> QueryVariation:
        results = await self.retrieve(candidate.query)
        report = score(results, self.judgments)
        logger.debug(
            "%s %s precision=%.4f recall=%.4f f1=%.4f num_ret=%d",
            shape,
            candidate.transformation_name,
            report.precision,
            report.recall,
            report.f1,
            int(report.num_ret),
        )
        return QueryVariation(
            query=text,
            shape=shape,
            transformation=candidate.transformation_name,
            num_transformations=candidate.depth,
            **report.model_dump(),
        )


__all__ = ["Evaluator"]
