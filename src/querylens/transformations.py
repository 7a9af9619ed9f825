"""Transformation identities and the fixed operator list requested per query."""

from __future__ import annotations

from enum import Enum


class TransformationKind(str, Enum):
    mesh_explosion = "mesh_explosion"
    logical_operator = "logical_operator"
    field_restrictions = "field_restrictions"
    mesh_parent = "mesh_parent"
    clause_removal = "clause_removal"
    cui2vec_expansion = "cui2vec_expansion"


TRANSFORMATION_NAMES: dict[TransformationKind, str] = {
    TransformationKind.mesh_explosion: "MeSH Explosion",
    TransformationKind.logical_operator: "Logical Operator Replacement",
    TransformationKind.field_restrictions: "Field Restrictions",
    TransformationKind.mesh_parent: "MeSH Parent",
    TransformationKind.clause_removal: "Clause Removal",
    TransformationKind.cui2vec_expansion: "cui2vec Expansion",
}

ORIGINAL_NAME = "Original"

# Every request asks for the same operators in the same order.
DEFAULT_OPERATORS: tuple[TransformationKind, ...] = (
    TransformationKind.mesh_explosion,
    TransformationKind.logical_operator,
    TransformationKind.field_restrictions,
    TransformationKind.mesh_parent,
    TransformationKind.clause_removal,
    TransformationKind.cui2vec_expansion,
)


def transformation_name(kind: TransformationKind | None) -> str:
    if kind is None:
        return ORIGINAL_NAME
    return TRANSFORMATION_NAMES[kind]


__all__ = [
    "TransformationKind",
    "TRANSFORMATION_NAMES",
    "ORIGINAL_NAME",
    "DEFAULT_OPERATORS",
    "transformation_name",
]
