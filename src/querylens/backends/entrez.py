"""NCBI E-utilities adapter: ``esearch`` per query atom."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Sequence

import httpx

from ..config import Settings
from ..dialects.pubmed import render_keyword
from ..errors import RetrievalError
from ..query import Keyword
from .base import HttpRetrievalBackend

logger = logging.getLogger(__name__)

ESEARCH_PATH = "/esearch.fcgi"
# esearch never returns ids past this position (retstart is capped at 9998),
# so larger result sets are collected in publication-date slices.
PAGE_LIMIT = 9_999
DATE_FORMAT = "%Y/%m/%d"

DateWindow = tuple[date, date]


def pool_term(term: str, pool: Sequence[str]) -> str:
    ids = " OR ".join(f"{doc_id}[uid]" for doc_id in pool)
    return f"({term}) AND ({ids})"


def split_window(window: DateWindow) -> tuple[DateWindow, DateWindow]:
    start, end = window
    middle = date.fromordinal((start.toordinal() + end.toordinal()) // 2)
    return (start, middle), (middle + timedelta(days=1), end)


class EntrezBackend(HttpRetrievalBackend):
    """
    Search PubMed through esearch and return the complete id set of an atom.

    A set that does not fit in one page is bisected by publication date
    until every slice does. When that still cannot yield every id the
    search fails rather than returning a partial set.
    """

    def __init__(self, settings: Settings) -> None:
        super().__init__(
            settings,
            base_url=settings.entrez_url.rstrip("/"),
            timeout=settings.entrez_timeout,
        )

    def _base_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "db": self.settings.entrez_db,
            "retmode": "json",
            "tool": self.settings.entrez_tool,
        }
        if self.settings.entrez_email:
            params["email"] = self.settings.entrez_email
        if self.settings.entrez_api_key:
            params["api_key"] = self.settings.entrez_api_key
        return params

    async def _esearch(
        self, term: str, window: DateWindow | None = None
    ) -> tuple[int, list[str]]:
        data = {**self._base_params(), "term": term, "retmax": PAGE_LIMIT}
        if window is not None:
            data["datetype"] = "pdat"
            data["mindate"] = window[0].strftime(DATE_FORMAT)
            data["maxdate"] = window[1].strftime(DATE_FORMAT)
        try:
            response = await self.http.post(ESEARCH_PATH, data=data)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RetrievalError(f"esearch failed for {term!r}: {exc}") from exc
        result = payload.get("esearchresult") or {}
        if "ERROR" in result:
            raise RetrievalError(f"esearch rejected {term!r}: {result['ERROR']}")
        try:
            count = int(result.get("count", 0))
        except (TypeError, ValueError) as exc:
            raise RetrievalError(f"esearch returned a bad count for {term!r}") from exc
        return count, [str(doc_id) for doc_id in result.get("idlist", [])]

    async def _collect(self, term: str, window: DateWindow) -> list[str]:
        count, ids = await self._esearch(term, window)
        if count <= len(ids):
            return ids
        start, end = window
        if start >= end:
            raise RetrievalError(
                f"{count} documents for {term!r} published on {start}, more than one page"
            )
        earlier, later = split_window(window)
        return await self._collect(term, earlier) + await self._collect(term, later)

    async def search(self, keyword: Keyword, pool: Sequence[str] | None = None) -> list[str]:
        term = render_keyword(keyword)
        if pool is not None:
            if not pool:
                return []
            term = pool_term(term, pool)
        count, ids = await self._esearch(term)
        if count <= len(ids):
            return ids
        if count > self.settings.entrez_retmax:
            raise RetrievalError(
                f"{term!r} matches {count} documents, above the limit of "
                f"{self.settings.entrez_retmax}"
            )
        logger.info("esearch for %r matches %d documents, splitting by date", term, count)
        window = (date(self.settings.entrez_min_year, 1, 1), date(date.today().year + 1, 12, 31))
        ids = list(dict.fromkeys(await self._collect(term, window)))
        if len(ids) < count:
            raise RetrievalError(f"collected {len(ids)} of {count} documents for {term!r}")
        return ids


__all__ = ["EntrezBackend", "pool_term", "split_window", "PAGE_LIMIT"]
