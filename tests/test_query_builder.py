import pytest

from lore.core.query import EMBEDDING_COLUMNS, QueryBuilder, as_list


def test_as_list_normalizes():
    assert as_list(None) == []
    assert as_list("") == []
    assert as_list("notes") == ["notes"]
    assert as_list(["a", "", "b"]) == ["a", "b"]


def test_empty_builder_builds_nothing():
    assert QueryBuilder().build() == ("", [])


def test_predicates_are_parameterized():
    sql, params = (
        QueryBuilder()
        .any_of("source", ["notes", "commits"])
        .equals("topic", "lore")
        .since("timestamp", "2024-01-01")
        .build()
    )

    assert sql == (" AND source IN (?, ?) AND topic = ?"
                   " AND timestamp != '' AND timestamp >= ?")
    assert params == ["notes", "commits", "lore", "2024-01-01"]


def test_single_value_any_of_uses_equality():
    sql, params = QueryBuilder().any_of("type", ["gotcha"]).build(prefix="WHERE")
    assert sql == " WHERE type = ?"
    assert params == ["gotcha"]


def test_contains_uses_instr_not_like():
    sql, params = QueryBuilder(alias="s").contains("content", "50%_off").build()
    assert sql == " AND instr(s.content, ?) > 0"
    assert params == ["50%_off"]


def test_none_values_are_skipped():
    sql, params = QueryBuilder().equals("topic", None).any_of("source", None).since("timestamp", "").build()
    assert (sql, params) == ("", [])


def test_unknown_column_rejected():
    with pytest.raises(ValueError):
        QueryBuilder().equals("rowid; DROP TABLE search", "x")
    with pytest.raises(ValueError):
        QueryBuilder(columns=EMBEDDING_COLUMNS).equals("title", "x")
