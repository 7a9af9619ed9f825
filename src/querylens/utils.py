"""Shared helpers for hashing query fragments and document pools."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable


def stable_hash(payload: Any, length: int = 16) -> str:
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha1(raw).hexdigest()[:length]


def hash_pool(doc_ids: Iterable[str]) -> str:
    """Identity of a judged pool, independent of declaration order."""
    return stable_hash(sorted(set(doc_ids)))


def parse_id_list(values: Iterable[str]) -> list[str]:
    """
    Flatten comma or whitespace separated document ids, keeping first occurrence order.

    Examples:
        ["1, 2", "3"] -> ["1", "2", "3"]
        ["1 1"] -> ["1"]
    """
    seen: set[str] = set()
    ids: list[str] = []
    for value in values:
        for token in value.replace(",", " ").split():
            if token and token not in seen:
                seen.add(token)
                ids.append(token)
    return ids


__all__ = ["stable_hash", "hash_pool", "parse_id_list"]
