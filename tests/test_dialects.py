from __future__ import annotations

import pytest

from querylens.dialects import DialectRegistry, MedlineDialect, PubMedDialect
from querylens.errors import CompilationError
from querylens.query import (
    ABSTRACT,
    ALL_FIELDS,
    MAJOR_MESH_HEADINGS,
    MESH_HEADINGS,
    TITLE,
    BooleanQuery,
    Keyword,
)


def test_pubmed_parses_field_tags_and_phrases() -> None:
    query = PubMedDialect().compile('"heart attack"[tiab] AND aspirin[mh] NOT rats[ti]')
    assert query == BooleanQuery(
        operator="not",
        children=(
            BooleanQuery(
                operator="and",
                children=(
                    Keyword(text="heart attack", fields=(TITLE, ABSTRACT)),
                    Keyword(text="aspirin", fields=(MESH_HEADINGS,), exploded=True),
                ),
            ),
            Keyword(text="rats", fields=(TITLE,)),
        ),
    )


def test_pubmed_flattens_runs_of_the_same_operator() -> None:
    query = PubMedDialect().compile("a AND b AND c")
    assert isinstance(query, BooleanQuery)
    assert query.operator == "and"
    assert [child.text for child in query.children] == ["a", "b", "c"]


def test_pubmed_keeps_parenthesised_groups() -> None:
    query = PubMedDialect().compile("(a OR b) AND c*[tiab]")
    assert isinstance(query, BooleanQuery)
    assert query.children[0] == BooleanQuery(
        operator="or", children=(Keyword(text="a"), Keyword(text="b"))
    )
    assert query.children[1] == Keyword(text="c", fields=(TITLE, ABSTRACT), truncated=True)


def test_pubmed_noexp_and_major_tags() -> None:
    dialect = PubMedDialect()
    assert dialect.compile("Insulin[mh:noexp]") == Keyword(text="Insulin", fields=(MESH_HEADINGS,))
    assert dialect.compile("Insulin[majr]") == Keyword(
        text="Insulin", fields=(MAJOR_MESH_HEADINGS,), exploded=True
    )


@pytest.mark.parametrize(
    "text",
    ["", "(a AND b", "a AND", "a[nonsense]", '"open quote', "[ti]"],
)
def test_pubmed_rejects_bad_queries(text: str) -> None:
    with pytest.raises(CompilationError):
        PubMedDialect().compile(text)


def test_medline_inline_query_is_case_insensitive() -> None:
    query = MedlineDialect().compile("diabetes AND insulin")
    assert query == BooleanQuery(
        operator="and",
        children=(Keyword(text="diabetes"), Keyword(text="insulin")),
    )
    assert query.children[0].fields == (ALL_FIELDS,)


def test_medline_subject_headings_and_suffixes() -> None:
    query = MedlineDialect().compile("exp Diabetes Mellitus/ and *Insulin/ and heart attack.ti,ab. and diabet$.tw.")
    assert isinstance(query, BooleanQuery)
    assert query.children == (
        Keyword(text="Diabetes Mellitus", fields=(MESH_HEADINGS,), exploded=True),
        Keyword(text="Insulin", fields=(MAJOR_MESH_HEADINGS,)),
        Keyword(text="heart attack", fields=(TITLE, ABSTRACT)),
        Keyword(text="diabet", fields=(TITLE, ABSTRACT), truncated=True),
    )


def test_medline_numbered_lines_resolve_references() -> None:
    text = """1. exp Diabetes Mellitus/
2. insulin.tw.
3. glucose.tw.
4. or/2-3
5. 1 and 4
"""
    query = MedlineDialect().compile(text)
    assert query == BooleanQuery(
        operator="and",
        children=(
            Keyword(text="Diabetes Mellitus", fields=(MESH_HEADINGS,), exploded=True),
            BooleanQuery(
                operator="or",
                children=(
                    Keyword(text="insulin", fields=(TITLE, ABSTRACT)),
                    Keyword(text="glucose", fields=(TITLE, ABSTRACT)),
                ),
            ),
        ),
    )


def test_medline_group_suffix_applies_to_every_term() -> None:
    query = MedlineDialect().compile("(heart attack or myocardial infarction).tw.")
    assert query == BooleanQuery(
        operator="or",
        children=(
            Keyword(text="heart attack", fields=(TITLE, ABSTRACT)),
            Keyword(text="myocardial infarction", fields=(TITLE, ABSTRACT)),
        ),
    )


def test_medline_group_suffix_after_subject_heading() -> None:
    query = MedlineDialect().compile("exp Diabetes Mellitus/ and (insulin or metformin.ab.).ti,ab.")
    assert query == BooleanQuery(
        operator="and",
        children=(
            Keyword(text="Diabetes Mellitus", fields=(MESH_HEADINGS,), exploded=True),
            BooleanQuery(
                operator="or",
                children=(
                    Keyword(text="insulin", fields=(TITLE, ABSTRACT)),
                    Keyword(text="metformin", fields=(ABSTRACT,)),
                ),
            ),
        ),
    )


def test_medline_adjacency_is_searched_as_and(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="querylens.dialects.medline"):
        query = MedlineDialect().compile("heart adj3 attack.tw. or infarct$.ti.")
    assert query == BooleanQuery(
        operator="or",
        children=(
            BooleanQuery(
                operator="and",
                children=(
                    Keyword(text="heart", fields=(TITLE, ABSTRACT)),
                    Keyword(text="attack", fields=(TITLE, ABSTRACT)),
                ),
            ),
            Keyword(text="infarct", fields=(TITLE,), truncated=True),
        ),
    )
    assert "adj3" in caplog.text


@pytest.mark.parametrize(
    "text",
    [
        "1. insulin.tw.\n2. 1 and 3",
        "insulin.xx.",
        "exp insulin.tw.",
        "1. or/3-1",
        "(insulin or metformin).xx.",
        "adj3 heart",
        "heart adj3",
        "heart adj3 or attack",
    ],
)
def test_medline_rejects_bad_queries(text: str) -> None:
    with pytest.raises(CompilationError):
        MedlineDialect().compile(text)


@pytest.mark.parametrize(
    "dialect, text",
    [
        (PubMedDialect(), '("heart attack"[tiab] OR aspirin[mh]) AND rats[ti] NOT mice*[tiab]'),
        (PubMedDialect(), "Insulin[majr:noexp] OR Review[pt]"),
        (MedlineDialect(), "(exp Diabetes Mellitus/ or *Insulin/) and diabet$.tw. and review.pt."),
        (MedlineDialect(), "1. heart.ti.\n2. attack.ab.\n3. 1 or 2\n4. 3 not rats.mp."),
        (MedlineDialect(), "(heart attack or myocardial infarction).tw. and exp Diabetes Mellitus/"),
    ],
)
def test_render_then_compile_is_structurally_stable(dialect, text: str) -> None:
    query = dialect.compile(text)
    assert dialect.compile(dialect.render(query)) == query


def test_render_splits_fields_without_a_single_tag() -> None:
    keyword = Keyword(text="insulin", fields=(TITLE, MESH_HEADINGS))
    assert PubMedDialect().render(keyword) == "(insulin[mh:noexp] OR insulin[ti])"
    assert MedlineDialect().render(keyword) == "(insulin/ or insulin.ti.)"


def test_registry_falls_back_to_default_dialect() -> None:
    registry = DialectRegistry()
    tag, dialect = registry.resolve("xyz")
    assert tag == "medline"
    assert isinstance(dialect, MedlineDialect)
    assert registry.resolve(None)[0] == "medline"
    assert registry.resolve("PubMed")[0] == "pubmed"


def test_registry_accepts_new_dialects() -> None:
    registry = DialectRegistry(default="pubmed")
    registry.register_dialect("ovid", MedlineDialect())
    assert registry.resolve("ovid")[0] == "ovid"
    assert registry.resolve("unknown")[0] == "pubmed"
    with pytest.raises(ValueError):
        DialectRegistry(default="missing")
