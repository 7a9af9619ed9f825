"""Candidate generation: one rewrite per applicable site, per operator."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Sequence

from .errors import GenerationError
from .query import (
    ABSTRACT,
    TITLE,
    BooleanQuery,
    Candidate,
    Keyword,
    iter_nodes,
    replace_at,
)
from .resources import EmbeddingResources
from .transformations import TransformationKind

logger = logging.getLogger(__name__)

QueryNode = Keyword | BooleanQuery
Transform = Callable[[QueryNode, EmbeddingResources], Iterator[QueryNode]]


class VariationGenerator(ABC):
    """Produces a deterministic, ordered list of variations of a seed."""

    @abstractmethod
    async def generate(
        self, seed: Candidate, operators: Sequence[TransformationKind]
    ) -> list[Candidate]:
        """Apply ``operators`` in order, tagging each candidate with its operator."""


def _keyword(node: Keyword, **changes: Any) -> Keyword:
    # Re-validate so fields stay canonical.
    return Keyword.model_validate({**node.model_dump(), **changes})


def mesh_explosion(query: QueryNode, _resources: EmbeddingResources) -> Iterator[QueryNode]:
    for path, node in iter_nodes(query):
        if isinstance(node, Keyword) and node.is_mesh:
            yield replace_at(query, path, _keyword(node, exploded=not node.exploded))


def logical_operator(query: QueryNode, _resources: EmbeddingResources) -> Iterator[QueryNode]:
    swap = {"and": "or", "or": "and"}
    for path, node in iter_nodes(query):
        if isinstance(node, BooleanQuery) and node.operator in swap:
            yield replace_at(
                query, path, node.model_copy(update={"operator": swap[node.operator]})
            )


def field_restrictions(query: QueryNode, _resources: EmbeddingResources) -> Iterator[QueryNode]:
    for path, node in iter_nodes(query):
        if not isinstance(node, Keyword):
            continue
        fields = set(node.fields)
        if fields == {TITLE, ABSTRACT}:
            yield replace_at(query, path, _keyword(node, fields=(TITLE,)))
            yield replace_at(query, path, _keyword(node, fields=(ABSTRACT,)))
        elif fields in ({TITLE}, {ABSTRACT}):
            yield replace_at(query, path, _keyword(node, fields=(TITLE, ABSTRACT)))


def mesh_parent(query: QueryNode, resources: EmbeddingResources) -> Iterator[QueryNode]:
    for path, node in iter_nodes(query):
        if isinstance(node, Keyword) and node.is_mesh:
            parent = resources.mesh_parent(node.text)
            if parent:
                yield replace_at(query, path, _keyword(node, text=parent))


def clause_removal(query: QueryNode, _resources: EmbeddingResources) -> Iterator[QueryNode]:
    for path, node in iter_nodes(query):
        if not isinstance(node, BooleanQuery) or len(node.children) < 2:
            continue
        for index in range(len(node.children)):
            # The first clause of a NOT is what the others are subtracted from.
            if node.operator == "not" and index == 0:
                continue
            yield replace_at(query, path + (index,), None)


def cui2vec_expansion(query: QueryNode, resources: EmbeddingResources) -> Iterator[QueryNode]:
    for path, node in iter_nodes(query):
        if not isinstance(node, Keyword) or node.is_mesh:
            continue
        term = resources.nearest_term(node.text)
        if term:
            expansion = Keyword(text=term, fields=node.fields)
            yield replace_at(
                query, path, BooleanQuery(operator="or", children=(node, expansion))
            )


TRANSFORMS: dict[TransformationKind, Transform] = {
    TransformationKind.mesh_explosion: mesh_explosion,
    TransformationKind.logical_operator: logical_operator,
    TransformationKind.field_restrictions: field_restrictions,
    TransformationKind.mesh_parent: mesh_parent,
    TransformationKind.clause_removal: clause_removal,
    TransformationKind.cui2vec_expansion: cui2vec_expansion,
}


class LocalVariationGenerator(VariationGenerator):
    """
    Runs the transformation operators in-process.

    Variations identical to the seed or to an earlier variation are dropped,
    so the first operator to reach a query owns it.
    """

    def __init__(self, resources: EmbeddingResources | None = None) -> None:
        self.resources = resources or EmbeddingResources()

    async def generate(
        self, seed: Candidate, operators: Sequence[TransformationKind]
    ) -> list[Candidate]:
        seen = {seed.query.fingerprint()}
        candidates: list[Candidate] = []
        for kind in operators:
            transform = TRANSFORMS.get(kind)
            if transform is None:
                raise GenerationError(f"no transformation registered for {kind}")
            try:
                queries = list(transform(seed.query, self.resources))
            except ValueError as exc:
                raise GenerationError(f"{kind.value} failed: {exc}") from exc
            for query in queries:
                fingerprint = query.fingerprint()
                if fingerprint in seen:
                    continue
                seen.add(fingerprint)
                candidates.append(
                    Candidate(query=query, transformation=kind, depth=seed.depth + 1)
                )
        logger.debug("generated %d variations", len(candidates))
        return candidates


__all__ = [
    "VariationGenerator",
    "LocalVariationGenerator",
    "TRANSFORMS",
    "mesh_explosion",
    "logical_operator",
    "field_restrictions",
    "mesh_parent",
    "clause_removal",
    "cui2vec_expansion",
]
