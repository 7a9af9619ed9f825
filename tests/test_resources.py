from __future__ import annotations

import asyncio

import pytest

import querylens.resources as resources_module
from querylens.config import Settings
from querylens.errors import ResourceError
from querylens.resources import EmbeddingResources, ResourceLoader, load_resources


def test_load_resources_reads_every_table(resource_files: Settings) -> None:
    loaded = load_resources(resource_files)
    assert loaded.concept_for("Diabetes") == "C0011849"
    assert loaded.neighbours["C0011849"] == [("C0011860", 0.91), ("C0021641", 0.42)]
    assert loaded.nearest_term("diabetes") == "diabetes mellitus"
    assert loaded.mesh_parent("Diabetes Mellitus, Type 2") == "Diabetes Mellitus"


def test_missing_paths_leave_tables_empty() -> None:
    loaded = load_resources(Settings())
    assert loaded.neighbours == {}
    assert loaded.nearest_term("diabetes") is None


def test_nearest_term_skips_the_term_itself() -> None:
    tables = EmbeddingResources(
        neighbours={"C1": [("C2", 0.9), ("C3", 0.5)]},
        names={"C2": "Insulin", "C3": "glucose"},
        concepts={"insulin": "C1"},
    )
    assert tables.nearest_term("insulin") == "glucose"


def test_short_rows_raise_resource_error(tmp_path) -> None:
    bad = tmp_path / "mapping.csv"
    bad.write_text("C0011860\n", encoding="utf-8")
    with pytest.raises(ResourceError):
        load_resources(Settings(cui2vec_mapping_path=str(bad)))


def test_missing_file_raises_resource_error(tmp_path) -> None:
    with pytest.raises(ResourceError):
        load_resources(Settings(quiche_path=str(tmp_path / "absent.csv")))


@pytest.mark.asyncio
async def test_loader_loads_once_under_concurrent_first_use(
    monkeypatch: pytest.MonkeyPatch, resources: EmbeddingResources
) -> None:
    calls = []

    def fake_load(settings: Settings) -> EmbeddingResources:
        calls.append(settings)
        return resources

    monkeypatch.setattr(resources_module, "load_resources", fake_load)
    loader = ResourceLoader(Settings())
    assert not loader.loaded
    with pytest.raises(ResourceError):
        loader.resources

    results = await asyncio.gather(*(loader.ensure_loaded() for _ in range(5)))

    assert all(result is resources for result in results)
    assert len(calls) == 1
    assert loader.loaded
    assert loader.resources is resources
