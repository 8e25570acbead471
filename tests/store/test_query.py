"""Tests for store request targets and where clauses."""

import pytest

from src.store.query import Target, Where, collection_target, record_target


class TestWhere:
    def test_eq_clause(self) -> None:
        assert Where.eq("projet_id", "10").render() == "(projet_id,eq,10)"

    def test_in_clause(self) -> None:
        assert Where.in_("projet_id", ["10", "20"]).render() == "(projet_id,in,10,20)"

    def test_and_composition(self) -> None:
        where = Where.eq("projet_id", "10").and_(Where.eq("supabase_user_id", "u1"))
        assert where.render() == "(projet_id,eq,10)~and(supabase_user_id,eq,u1)"

    def test_empty_where_is_falsy(self) -> None:
        assert not Where()


class TestTarget:
    def test_bare_collection(self) -> None:
        assert collection_target("tbl").render() == "/tbl"

    def test_record_path(self) -> None:
        assert record_target("tbl", "42").render() == "/tbl/42"

    def test_query_parameters_are_ordered(self) -> None:
        target = collection_target(
            "tbl",
            where=Where.eq("projet_id", "10"),
            fields=("Id", "projet_id"),
            limit=1,
        )
        assert target.render() == "/tbl?where=(projet_id,eq,10)&fields=Id,projet_id&limit=1"

    def test_distinct_filters_render_distinct_targets(self) -> None:
        a = collection_target("tbl", where=Where.eq("projet_id", "1"))
        b = collection_target("tbl", where=Where.eq("projet_id", "10"))
        assert a.render() != b.render()

    def test_page_keeps_filters(self) -> None:
        target = collection_target("tbl", where=Where.eq("projet_id", "10")).page(100, 200)
        assert target.render() == "/tbl?where=(projet_id,eq,10)&limit=100&offset=200"

    def test_record_id_is_escaped(self) -> None:
        assert Target(table_id="tbl", record_id="a/b").path == "/tbl/a%2Fb"


class TestReservedCharacters:
    @pytest.mark.parametrize("value", [
        "10)~or(projet_id,neq,x",
        "10,20",
        "a~and(b",
        "(x)",
    ])
    def test_values_that_could_add_predicates_are_rejected(self, value: str) -> None:
        with pytest.raises(ValueError):
            Where.eq("projet_id", value)
        with pytest.raises(ValueError):
            Where.in_("projet_id", ["10", value])

    def test_field_names_are_checked_too(self) -> None:
        with pytest.raises(ValueError):
            Where.eq("projet_id,eq,1)~or(x", "1")

    def test_other_characters_are_percent_encoded(self) -> None:
        target = collection_target("tbl", where=Where.eq("nom", "a&b=c d"))
        assert target.render() == "/tbl?where=(nom,eq,a%26b%3Dc%20d)"
