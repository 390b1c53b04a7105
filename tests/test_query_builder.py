"""Tests for tidbits.query_builder: filter to parameterized SQL."""

from tidbits.query_builder import (
    ENTRY_COLUMNS,
    build_predicates,
    build_search_statements,
    escape_like,
    fts_query,
    render_where,
)
from tidbits.types import QueryFilter


class TestFtsQuery:
    def test_quotes_each_term(self):
        assert fts_query("golang docs") == '"golang" "docs"'

    def test_hyphenated_tag_stays_one_term(self):
        assert fts_query("go-1") == '"go-1"'

    def test_embedded_quote_is_doubled(self):
        assert fts_query('say"hi') == '"say""hi"'

    def test_collapses_whitespace(self):
        assert fts_query("  a   b ") == '"a" "b"'


class TestEscapeLike:
    def test_wildcards_are_escaped(self):
        assert escape_like("50%_off") == "50\\%\\_off"

    def test_escape_character_is_doubled(self):
        assert escape_like("a\\b") == "a\\\\b"

    def test_plain_text_unchanged(self):
        assert escape_like("go-docs") == "go-docs"


class TestBuildPredicates:
    def test_empty_filter(self):
        predicates, joined = build_predicates(QueryFilter())
        assert predicates == []
        assert joined is False

    def test_keyword_goes_first_and_joins(self):
        predicates, joined = build_predicates(
            QueryFilter(key="doc", keyword="golang", category="bookmark"),
        )
        assert joined is True
        assert predicates[0].operator == "MATCH"
        assert [p.value for p in predicates] == ['"golang"', "%doc%", "bookmark"]

    def test_key_is_substring_pattern(self):
        predicates, _ = build_predicates(QueryFilter(key="abc"))
        assert predicates[0].render() == "e.key LIKE ? ESCAPE '\\'"
        assert predicates[0].value == "%abc%"

    def test_blank_keyword_is_ignored(self):
        predicates, joined = build_predicates(QueryFilter(keyword="   ", namespace="go"))
        assert joined is False
        assert len(predicates) == 1


class TestRenderWhere:
    def test_first_where_rest_and(self):
        predicates, _ = build_predicates(QueryFilter(category="c", namespace="n"))
        assert render_where(predicates) == "WHERE e.category = ? AND e.namespace = ?"

    def test_no_predicates(self):
        assert render_where([]) == ""


class TestBuildSearchStatements:
    def test_data_params_extend_count_params(self):
        query = QueryFilter(key="k", keyword="t", category="c", namespace="n", limit=7, offset=14)
        statements = build_search_statements(query)

        assert statements.data.params == statements.count.params + (7, 14)
        assert statements.count.sql.count("?") == len(statements.count.params)
        assert statements.data.sql.count("?") == len(statements.data.params)

    def test_plain_form_without_keyword(self):
        statements = build_search_statements(QueryFilter(category="c"))
        assert "JOIN" not in statements.count.sql
        assert statements.count.sql == "SELECT COUNT(e.id) FROM entries e WHERE e.category = ?"

    def test_joined_form_with_keyword(self):
        statements = build_search_statements(QueryFilter(keyword="golang"))
        assert "JOIN tags_index" in statements.data.sql
        assert "WHERE tags_index MATCH ?" in statements.data.sql
        assert statements.joined

    def test_data_statement_is_ordered_and_paginated(self):
        statements = build_search_statements(QueryFilter(category="c"))
        assert statements.data.sql.endswith("ORDER BY e.internal_id LIMIT ? OFFSET ?")

    def test_values_never_inlined(self):
        hostile = "x'; DROP TABLE entries; --"
        statements = build_search_statements(QueryFilter(category=hostile))
        assert hostile not in statements.data.sql
        assert hostile in statements.data.params

    def test_empty_filter_selects_everything(self):
        statements = build_search_statements(QueryFilter(), ENTRY_COLUMNS)
        assert "WHERE" not in statements.data.sql
        assert statements.count.params == ()
        assert statements.data.params == (5, 0)
