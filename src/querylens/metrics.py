"""Set-based effectiveness measures for a retrieved list against qrels."""

from __future__ import annotations

from typing import Mapping, Sequence

from .models import MetricReport

# Judgments with a grade above this count as relevant.
RELEVANCE_GRADE = 0


def relevant_ids(judgments: Mapping[str, int]) -> set[str]:
    return {doc_id for doc_id, grade in judgments.items() if grade > RELEVANCE_GRADE}


def precision(retrieved: Sequence[str], relevant: set[str]) -> float:
    if not retrieved:
        return 0.0
    hits = sum(1 for doc_id in set(retrieved) if doc_id in relevant)
    return hits / len(set(retrieved))


def recall(retrieved: Sequence[str], relevant: set[str]) -> float:
    if not relevant:
        return 0.0
    hits = sum(1 for doc_id in set(retrieved) if doc_id in relevant)
    return hits / len(relevant)


def f1_measure(p: float, r: float) -> float:
    if p + r == 0:
        return 0.0
    return 2 * p * r / (p + r)


def score(retrieved: Sequence[str], judgments: Mapping[str, int]) -> MetricReport:
    relevant = relevant_ids(judgments)
    p = precision(retrieved, relevant)
    r = recall(retrieved, relevant)
    return MetricReport(
        precision=p,
        recall=r,
        f1=f1_measure(p, r),
        num_ret=float(len(set(retrieved))),
    )


__all__ = ["RELEVANCE_GRADE", "relevant_ids", "precision", "recall", "f1_measure", "score"]
