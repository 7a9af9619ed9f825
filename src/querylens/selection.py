"""
Learned selection of the most promising variation.

Every candidate of the pool becomes one SVMLight line for QuickRank, with
these feature ids:

====  ===========================================================
1     transformation (position in ``DEFAULT_OPERATORS`` + 1; 0 for the seed)
2     depth
3     keywords
4     boolean nodes
5     tree depth
6-8   ``and`` / ``or`` / ``not`` nodes
9     MeSH keywords
10    exploded keywords
11    truncated keywords
12    distinct fields
13    documents retrieved by the candidate
14    documents retrieved by the seed
15    13 relative to 14 (0 when the seed retrieves nothing)
16    smallest keyword result set
17    largest keyword result set
18    mean keyword result set
====  ===========================================================

Features 13-18 come from a statistics source and are 0 without one.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import NamedTuple, Protocol, Sequence

from .config import Settings
from .errors import SelectionError
from .query import BooleanQuery, Candidate, Keyword, iter_nodes, tree_depth
from .transformations import DEFAULT_OPERATORS

logger = logging.getLogger(__name__)

RETRIEVAL_FEATURES = 6


class StatisticsSource(Protocol):
    """Retrieval access used for effectiveness features; the session evaluator."""

    async def retrieve(self, query: Keyword | BooleanQuery) -> list[str]: ...

    async def fragment_sizes(self, query: Keyword | BooleanQuery) -> list[int]: ...


class RetrievalStatistics(NamedTuple):
    retrieved: int
    seed_retrieved: int
    fragment_sizes: tuple[int, ...]


class CandidateSelector(ABC):
    @abstractmethod
    async def select(
        self,
        seed: Candidate,
        pool: Sequence[Candidate],
        max_depth: int = 1,
        statistics: StatisticsSource | None = None,
    ) -> Candidate:
        """Return the candidate of ``pool`` predicted to retrieve best."""


def _retrieval_features(statistics: RetrievalStatistics | None) -> list[float]:
    if statistics is None:
        return [0.0] * RETRIEVAL_FEATURES
    sizes = statistics.fragment_sizes
    ratio = 0.0
    if statistics.seed_retrieved:
        ratio = statistics.retrieved / statistics.seed_retrieved
    return [
        float(statistics.retrieved),
        float(statistics.seed_retrieved),
        ratio,
        float(min(sizes, default=0)),
        float(max(sizes, default=0)),
        sum(sizes) / len(sizes) if sizes else 0.0,
    ]


def candidate_features(
    candidate: Candidate, statistics: RetrievalStatistics | None = None
) -> list[float]:
    """Features of a candidate, in SVMLight feature-id order."""
    keywords: list[Keyword] = []
    operators = {"and": 0, "or": 0, "not": 0}
    for _path, node in iter_nodes(candidate.query):
        if isinstance(node, Keyword):
            keywords.append(node)
        elif isinstance(node, BooleanQuery):
            operators[node.operator] += 1
    transformation = 0
    if candidate.transformation is not None:
        transformation = DEFAULT_OPERATORS.index(candidate.transformation) + 1
    fields = {field for keyword in keywords for field in keyword.fields}
    return [
        float(transformation),
        float(candidate.depth),
        float(len(keywords)),
        float(sum(operators.values())),
        float(tree_depth(candidate.query)),
        float(operators["and"]),
        float(operators["or"]),
        float(operators["not"]),
        float(sum(1 for keyword in keywords if keyword.is_mesh)),
        float(sum(1 for keyword in keywords if keyword.exploded)),
        float(sum(1 for keyword in keywords if keyword.truncated)),
        float(len(fields)),
    ] + _retrieval_features(statistics)


def svmlight_line(features: Sequence[float], qid: str, comment: str = "") -> str:
    values = " ".join(f"{index}:{value:g}" for index, value in enumerate(features, start=1))
    line = f"0 qid:{qid} {values}"
    return f"{line} # {comment}" if comment else line


def parse_scores(raw: str, expected: int) -> list[float]:
    scores: list[float] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            scores.append(float(line.split()[-1]))
        except ValueError as exc:
            raise SelectionError(f"unreadable ranker score {line!r}") from exc
    if len(scores) != expected:
        raise SelectionError(f"ranker returned {len(scores)} scores for {expected} candidates")
    return scores


class QuickRankSelector(CandidateSelector):
    """Ranks the pool with a QuickRank model and picks the top candidate."""

    def __init__(
        self,
        settings: Settings,
        *,
        executable: str | None = None,
        model_path: str | None = None,
    ) -> None:
        self.executable = executable or settings.quickrank_path
        self.model_path = model_path or settings.ranking_model_path
        self.metric = settings.ranking_metric
        self.cutoff = settings.ranking_cutoff

    def command(self, features_path: Path, scores_path: Path) -> list[str]:
        return [
            self.executable,
            "--model-in",
            self.model_path,
            "--test",
            str(features_path),
            "--test-metric",
            self.metric,
            "--test-cutoff",
            str(self.cutoff),
            "--scores",
            str(scores_path),
        ]

    async def features(
        self,
        seed: Candidate,
        pool: Sequence[Candidate],
        statistics: StatisticsSource | None = None,
    ) -> list[list[float]]:
        if statistics is None:
            return [candidate_features(candidate) for candidate in pool]
        seed_retrieved = len(await statistics.retrieve(seed.query))
        rows: list[list[float]] = []
        for candidate in pool:
            retrieved = await statistics.retrieve(candidate.query)
            sizes = await statistics.fragment_sizes(candidate.query)
            rows.append(
                candidate_features(
                    candidate,
                    RetrievalStatistics(len(retrieved), seed_retrieved, tuple(sizes)),
                )
            )
        return rows

    async def _run(self, features_path: Path, scores_path: Path) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(features_path, scores_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _stdout, stderr = await process.communicate()
        except OSError as exc:
            raise SelectionError(f"could not run ranker {self.executable}: {exc}") from exc
        if process.returncode != 0:
            detail = stderr.decode("utf-8", "replace").strip()[-500:]
            raise SelectionError(f"ranker exited with {process.returncode}: {detail}")

    async def _rank(self, pool: Sequence[Candidate], rows: Sequence[Sequence[float]]) -> list[float]:
        payload = "\n".join(
            svmlight_line(row, "0", candidate.transformation_name)
            for candidate, row in zip(pool, rows)
        ) + "\n"
        try:
            workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="querylens-"))
        except OSError as exc:
            raise SelectionError(f"no scratch directory for the ranker: {exc}") from exc
        features_path = workdir / "features.txt"
        scores_path = workdir / "scores.txt"
        try:
            try:
                await asyncio.to_thread(features_path.write_text, payload, encoding="utf-8")
            except OSError as exc:
                raise SelectionError(f"could not write ranker features: {exc}") from exc
            await self._run(features_path, scores_path)
            try:
                raw = await asyncio.to_thread(scores_path.read_text, encoding="utf-8")
            except OSError as exc:
                raise SelectionError(f"ranker wrote no scores: {exc}") from exc
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, ignore_errors=True)
        return parse_scores(raw, len(pool))

    async def select(
        self,
        seed: Candidate,
        pool: Sequence[Candidate],
        max_depth: int = 1,
        statistics: StatisticsSource | None = None,
    ) -> Candidate:
        if max_depth != 1:
            raise SelectionError(f"selection depth {max_depth} unsupported, only 1")
        if not pool:
            # Nothing to choose from; the seed is the only candidate at depth zero.
            return seed
        rows = await self.features(seed, pool, statistics)
        scores = await self._rank(pool, rows)
        best = max(range(len(pool)), key=lambda index: (scores[index], -index))
        logger.info("ranker picked %s (score %.4f)", pool[best].transformation_name, scores[best])
        return pool[best]


__all__ = [
    "CandidateSelector",
    "QuickRankSelector",
    "RetrievalStatistics",
    "StatisticsSource",
    "candidate_features",
    "svmlight_line",
    "parse_scores",
]
