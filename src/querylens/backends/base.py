"""Base abstractions for retrieval backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import httpx

from ..config import Settings
from ..query import Keyword


class RetrievalBackend(ABC):
    """Interface that adapters implement to run one query atom."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    async def search(self, keyword: Keyword, pool: Sequence[str] | None = None) -> list[str]:
        """
        Return the ids of documents matching ``keyword``.

        When ``pool`` is given only ids from the pool may be returned.
        """

    async def close(self) -> None:
        """Optional cleanup hook."""
        return None


class HttpRetrievalBackend(RetrievalBackend):
    """Retrieval backend convenience base that sends HTTP requests."""

    def __init__(
        self,
        settings: Settings,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(settings)
        self.http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
        )

    async def close(self) -> None:
        await self.http.aclose()
