"""Process-wide lookup tables used by the expansion transformations.

The tables are loaded once per process, on first use, behind a single
lock. All files are optional; a missing path leaves its table empty and the
transformation that depends on it produces no variations.
"""

from __future__ import annotations

import asyncio
import csv
import logging
from pathlib import Path
from typing import Iterator

from .config import Settings
from .errors import ResourceError

logger = logging.getLogger(__name__)


class EmbeddingResources:
    """cui2vec neighbours, CUI names, the term->CUI cache and MeSH parents."""

    def __init__(
        self,
        *,
        neighbours: dict[str, list[tuple[str, float]]] | None = None,
        names: dict[str, str] | None = None,
        concepts: dict[str, str] | None = None,
        mesh_parents: dict[str, str] | None = None,
    ) -> None:
        self.neighbours = neighbours or {}
        self.names = names or {}
        self.concepts = concepts or {}
        self.mesh_parents = mesh_parents or {}

    def concept_for(self, term: str) -> str | None:
        return self.concepts.get(term.strip().lower())

    def nearest_term(self, term: str) -> str | None:
        """Preferred name of the closest cui2vec neighbour of ``term``'s concept."""
        cui = self.concept_for(term)
        if cui is None:
            return None
        for neighbour, _similarity in self.neighbours.get(cui, []):
            name = self.names.get(neighbour)
            if name and name.lower() != term.strip().lower():
                return name
        return None

    def mesh_parent(self, heading: str) -> str | None:
        return self.mesh_parents.get(heading.strip().lower())


def _rows(path: str, columns: int) -> Iterator[list[str]]:
    with Path(path).open(newline="", encoding="utf-8") as handle:
        for line_no, row in enumerate(csv.reader(handle), start=1):
            if not row or row[0].startswith("#"):
                continue
            if len(row) < columns:
                raise ValueError(f"{path}:{line_no}: expected {columns} columns")
            yield [value.strip() for value in row]


def load_resources(settings: Settings) -> EmbeddingResources:
    neighbours: dict[str, list[tuple[str, float]]] = {}
    names: dict[str, str] = {}
    concepts: dict[str, str] = {}
    mesh_parents: dict[str, str] = {}
    try:
        if settings.cui2vec_embeddings_path:
            logger.info("loading cui2vec neighbours")
            for cui, neighbour, similarity in _rows(settings.cui2vec_embeddings_path, 3):
                neighbours.setdefault(cui, []).append((neighbour, float(similarity)))
            for entries in neighbours.values():
                entries.sort(key=lambda item: item[1], reverse=True)
        if settings.cui2vec_mapping_path:
            logger.info("loading mappings")
            for cui, name, *_rest in _rows(settings.cui2vec_mapping_path, 2):
                names[cui] = name
        if settings.quiche_path:
            logger.info("loading quiche cache")
            for term, cui, *_rest in _rows(settings.quiche_path, 2):
                concepts[term.lower()] = cui
        if settings.mesh_parents_path:
            logger.info("loading mesh parents")
            for heading, parent, *_rest in _rows(settings.mesh_parents_path, 2):
                mesh_parents[heading.lower()] = parent
    except (OSError, ValueError) as exc:
        raise ResourceError(f"failed to load lens resources: {exc}") from exc
    return EmbeddingResources(
        neighbours=neighbours,
        names=names,
        concepts=concepts,
        mesh_parents=mesh_parents,
    )


class ResourceLoader:
    """Loads :class:`EmbeddingResources` exactly once, even under concurrent first use."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._lock = asyncio.Lock()
        self._resources: EmbeddingResources | None = None

    @property
    def loaded(self) -> bool:
        return self._resources is not None

    @property
    def resources(self) -> EmbeddingResources:
        if self._resources is None:
            raise ResourceError("lens resources accessed before loading")
        return self._resources

    async def ensure_loaded(self) -> EmbeddingResources:
        if self._resources is not None:
            return self._resources
        async with self._lock:
            if self._resources is None:
                self._resources = await asyncio.to_thread(load_resources, self.settings)
        return self._resources


__all__ = ["EmbeddingResources", "ResourceLoader", "load_resources"]
