"""Configuration helpers shared across the service."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EvaluationMode = Literal["collection", "pool"]
CacheScope = Literal["session", "durable"]


class Settings(BaseSettings):
    """Environment-backed settings."""

    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    lens_host: str = Field("0.0.0.0", alias="LENS_HOST")
    lens_port: int = Field(8000, alias="LENS_PORT")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", alias="LOG_LEVEL")
    snapshot: str = Field("pubmed", alias="SNAPSHOT")
    default_dialect: str = Field("medline", alias="DEFAULT_DIALECT")
    # collection: atoms run against the whole collection.
    # pool: atoms are restricted to the judged documents of the session.
    evaluation_mode: EvaluationMode = Field("collection", alias="EVALUATION_MODE")
    cache_scope: CacheScope = Field("durable", alias="CACHE_SCOPE")
    poll_interval_ms: int = Field(1, alias="POLL_INTERVAL_MS")

    entrez_url: str = Field(
        "https://eutils.ncbi.nlm.nih.gov/entrez/eutils", alias="ENTREZ_URL"
    )
    entrez_db: str = Field("pubmed", alias="ENTREZ_DB")
    entrez_api_key: str | None = Field(default=None, alias="ENTREZ_API_KEY")
    entrez_email: str | None = Field(default=None, alias="ENTREZ_EMAIL")
    entrez_tool: str = Field("querylens", alias="ENTREZ_TOOL")
    # Largest atom result set retrieved in full; bigger atoms fail the session.
    entrez_retmax: int = Field(1_000_000, alias="ENTREZ_RETMAX")
    entrez_min_year: int = Field(1781, alias="ENTREZ_MIN_YEAR")
    entrez_timeout: float = Field(60.0, alias="ENTREZ_TIMEOUT")

    quickrank_path: str = Field("quickrank", alias="QUICKRANK_PATH")
    ranking_model_path: str = Field(
        "plugin/querylens/balanced.xml", alias="RANKING_MODEL_PATH"
    )
    ranking_metric: str = Field("DCG", alias="RANKING_METRIC")
    ranking_cutoff: int = Field(1, alias="RANKING_CUTOFF")

    cui2vec_embeddings_path: str | None = Field(default=None, alias="CUI2VEC_EMBEDDINGS")
    cui2vec_mapping_path: str | None = Field(default=None, alias="CUI2VEC_MAPPINGS")
    quiche_path: str | None = Field(default=None, alias="QUICHE")
    mesh_parents_path: str | None = Field(default=None, alias="MESH_PARENTS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=(
            Path(__file__).resolve().parent.parent / ".env",
            Path.cwd() / ".env",
        ),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()  # type: ignore[call-arg]


__all__ = ["CacheScope", "EvaluationMode", "Settings", "get_settings"]
