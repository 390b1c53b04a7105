"""
Parameterized SQL for entry search.

A QueryFilter becomes an ordered list of predicates. The same list is
rendered twice: once into a COUNT statement and once into a paginated
data statement. Values only ever travel as positional parameters.
"""

from dataclasses import dataclass, field
from typing import Any

from .types import QueryFilter

# Column references
KEY_COLUMN = "e.key"
CATEGORY_COLUMN = "e.category"
NAMESPACE_COLUMN = "e.namespace"
# FTS5 hidden column named after the table: matches across the index
TAGS_INDEX_COLUMN = "tags_index"

# Operators
EQUALS = "="
LIKE = "LIKE"
MATCH = "MATCH"

# Escape character for LIKE wildcards in literal substrings
LIKE_ESCAPE = "\\"

_PLAIN_FROM = "FROM entries e"
_JOINED_FROM = "FROM entries e JOIN tags_index ON (tags_index.rowid = e.internal_id)"

ITEM_COLUMNS = "e.id, e.key, e.category, e.namespace, e.tag_values"
ENTRY_COLUMNS = (
    "e.id, e.key, e.value, e.notes, e.category, e.namespace, "
    "e.tag_values, e.reference, e.media_type"
)


@dataclass(frozen=True)
class Predicate:
    """One filter condition: ``column operator ?`` bound to ``value``."""
    column: str
    operator: str
    value: Any

    def render(self) -> str:
        if self.operator == LIKE:
            return f"{self.column} LIKE ? ESCAPE '{LIKE_ESCAPE}'"
        return f"{self.column} {self.operator} ?"


@dataclass(frozen=True)
class Statement:
    """SQL text and the positional parameters it binds."""
    sql: str
    params: tuple = ()


@dataclass(frozen=True)
class SearchStatements:
    """
    The count/data pair for one search.

    ``data.params`` is ``count.params`` followed by limit and offset.
    """
    count: Statement
    data: Statement
    predicates: tuple[Predicate, ...] = field(default_factory=tuple)
    joined: bool = False


def fts_query(keyword: str) -> str:
    """
    Quote each whitespace-separated term as an FTS5 string.

    Tags may contain hyphens, which FTS5 barewords reject. Quoted terms
    separated by spaces are ANDed by FTS5.
    """
    terms = keyword.split()
    return " ".join('"' + t.replace('"', '""') + '"' for t in terms)


def escape_like(text: str) -> str:
    """Escape ``%`` and ``_`` so LIKE treats ``text`` literally."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def build_predicates(query: QueryFilter) -> tuple[list[Predicate], bool]:
    """
    Turn a filter into an ordered predicate list.

    Returns the predicates and whether the full-text index must be joined.
    The keyword predicate goes first since it selects the joined form.
    """
    predicates: list[Predicate] = []
    joined = False

    if query.keyword and query.keyword.strip():
        joined = True
        predicates.append(Predicate(TAGS_INDEX_COLUMN, MATCH, fts_query(query.keyword)))

    if query.key:
        predicates.append(Predicate(KEY_COLUMN, LIKE, f"%{escape_like(query.key)}%"))

    if query.category:
        predicates.append(Predicate(CATEGORY_COLUMN, EQUALS, query.category))

    if query.namespace:
        predicates.append(Predicate(NAMESPACE_COLUMN, EQUALS, query.namespace))

    return predicates, joined


def render_where(predicates: list[Predicate]) -> str:
    """First predicate opens with WHERE, the rest are ANDed on."""
    clauses = []
    for i, predicate in enumerate(predicates):
        keyword = "WHERE" if i == 0 else "AND"
        clauses.append(f"{keyword} {predicate.render()}")
    return " ".join(clauses)


def build_search_statements(
    query: QueryFilter,
    columns: str = ITEM_COLUMNS,
) -> SearchStatements:
    """
    Build the count and data statements for a filter.

    Args:
        query: Search criteria
        columns: Select list for the data statement (projection or full entry)

    Returns:
        SearchStatements sharing one predicate list
    """
    predicates, joined = build_predicates(query)
    from_clause = _JOINED_FROM if joined else _PLAIN_FROM
    where = render_where(predicates)
    filter_params = tuple(p.value for p in predicates)

    count_sql = f"SELECT COUNT(e.id) {from_clause}"
    data_sql = f"SELECT {columns} {from_clause}"
    if where:
        count_sql = f"{count_sql} {where}"
        data_sql = f"{data_sql} {where}"
    data_sql = f"{data_sql} ORDER BY e.internal_id LIMIT ? OFFSET ?"

    return SearchStatements(
        count=Statement(count_sql, filter_params),
        data=Statement(data_sql, filter_params + (query.limit, query.offset)),
        predicates=tuple(predicates),
        joined=joined,
    )
