"""Dialect-independent boolean query tree and candidate lineage."""

from __future__ import annotations

from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .transformations import TransformationKind, transformation_name
from .utils import stable_hash

Operator = Literal["and", "or", "not"]
Path = tuple[int, ...]

# Canonical field names shared by every dialect.
TITLE = "title"
ABSTRACT = "abstract"
MESH_HEADINGS = "mesh_headings"
MAJOR_MESH_HEADINGS = "major_mesh_headings"
PUBLICATION_TYPE = "publication_type"
ALL_FIELDS = "all_fields"

MESH_FIELDS = frozenset({MESH_HEADINGS, MAJOR_MESH_HEADINGS})


class Keyword(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["keyword"] = "keyword"
    text: str
    fields: tuple[str, ...] = (ALL_FIELDS,)
    exploded: bool = False
    truncated: bool = False

    @field_validator("text", mode="before")
    def _normalize_text(cls, value: object) -> object:
        if isinstance(value, str):
            return " ".join(value.split())
        return value

    @field_validator("fields", mode="before")
    def _normalize_fields(cls, value: object) -> object:
        if isinstance(value, (list, tuple, set, frozenset)):
            unique = sorted({str(item) for item in value if item})
            return tuple(unique) or (ALL_FIELDS,)
        return value

    @property
    def is_mesh(self) -> bool:
        return any(field in MESH_FIELDS for field in self.fields)

    def fingerprint(self) -> str:
        return stable_hash(self.model_dump(mode="json"))


class BooleanQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["boolean"] = "boolean"
    operator: Operator
    children: tuple["Node", ...]

    @field_validator("operator", mode="before")
    def _normalize_operator(cls, value: object) -> object:
        if isinstance(value, str):
            return value.lower()
        return value

    def fingerprint(self) -> str:
        return stable_hash(self.model_dump(mode="json"))


Node = Annotated[Union[Keyword, BooleanQuery], Field(discriminator="kind")]
BooleanQuery.model_rebuild()


class Candidate(BaseModel):
    """A query plus the lineage of the transformation that produced it."""

    model_config = ConfigDict(frozen=True)

    query: Node
    transformation: TransformationKind | None = None
    depth: int = 0

    @property
    def transformation_name(self) -> str:
        return transformation_name(self.transformation)


def iter_nodes(node: Keyword | BooleanQuery, path: Path = ()) -> Iterator[tuple[Path, Keyword | BooleanQuery]]:
    """Yield (path, node) pairs in pre-order; a path indexes into children."""
    yield path, node
    if isinstance(node, BooleanQuery):
        for index, child in enumerate(node.children):
            yield from iter_nodes(child, path + (index,))


def iter_keywords(node: Keyword | BooleanQuery) -> Iterator[Keyword]:
    for _path, item in iter_nodes(node):
        if isinstance(item, Keyword):
            yield item


def replace_at(
    node: Keyword | BooleanQuery, path: Path, new: Keyword | BooleanQuery | None
) -> Keyword | BooleanQuery:
    """
    Return a copy of ``node`` with the subtree at ``path`` replaced.

    Passing ``None`` removes the subtree; a parent left with a single child
    collapses into that child.
    """
    if not path:
        if new is None:
            raise ValueError("cannot remove the root of a query")
        return new
    if not isinstance(node, BooleanQuery):
        raise ValueError(f"path {path} descends into a keyword")
    head, rest = path[0], path[1:]
    children = list(node.children)
    if rest:
        children[head] = replace_at(children[head], rest, new)
    elif new is None:
        del children[head]
    else:
        children[head] = new
    if not children:
        raise ValueError("cannot remove the last child of a query")
    if len(children) == 1:
        return children[0]
    return node.model_copy(update={"children": tuple(children)})


def tree_depth(node: Keyword | BooleanQuery) -> int:
    if isinstance(node, Keyword):
        return 1
    return 1 + max((tree_depth(child) for child in node.children), default=0)


__all__ = [
    "Operator",
    "Path",
    "Keyword",
    "BooleanQuery",
    "Node",
    "Candidate",
    "TITLE",
    "ABSTRACT",
    "MESH_HEADINGS",
    "MAJOR_MESH_HEADINGS",
    "PUBLICATION_TYPE",
    "ALL_FIELDS",
    "MESH_FIELDS",
    "iter_nodes",
    "iter_keywords",
    "replace_at",
    "tree_depth",
]
