"""
Parameterized WHERE-clause builder.

Column names are checked against a whitelist and every value is bound
as a parameter, so filter values never reach the SQL text.
"""

from typing import Any, List, Optional, Sequence, Tuple, Union

RECORD_COLUMNS = ("source", "title", "content", "metadata", "topic", "type", "timestamp")
EMBEDDING_COLUMNS = ("source", "topic", "type", "timestamp", "doc_id", "chunk_idx")

FilterValue = Union[None, str, Sequence[str]]


def as_list(value: FilterValue) -> List[str]:
    """Normalize a one-or-many filter value to a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [v for v in value if v]


class QueryBuilder:
    """Collects predicates for one statement."""

    def __init__(self, alias: Optional[str] = None, columns: Sequence[str] = RECORD_COLUMNS):
        self.alias = alias
        self.columns = tuple(columns)
        self.clauses: List[str] = []
        self.params: List[Any] = []

    def _column(self, name: str) -> str:
        if name not in self.columns:
            raise ValueError(f"Unknown filter column: {name}")
        return f"{self.alias}.{name}" if self.alias else name

    def raw(self, clause: str, *params: Any) -> "QueryBuilder":
        """Add a fixed clause. Only for SQL written in this package."""
        self.clauses.append(clause)
        self.params.extend(params)
        return self

    def equals(self, name: str, value: Optional[str]) -> "QueryBuilder":
        if value:
            self.clauses.append(f"{self._column(name)} = ?")
            self.params.append(value)
        return self

    def any_of(self, name: str, values: FilterValue) -> "QueryBuilder":
        values = as_list(values)
        if len(values) == 1:
            return self.equals(name, values[0])
        if values:
            placeholders = ", ".join("?" for _ in values)
            self.clauses.append(f"{self._column(name)} IN ({placeholders})")
            self.params.extend(values)
        return self

    def since(self, name: str, floor: Optional[str]) -> "QueryBuilder":
        """Keep rows with a non-empty value at or after floor."""
        if floor:
            column = self._column(name)
            self.clauses.append(f"{column} != '' AND {column} >= ?")
            self.params.append(floor)
        return self

    def contains(self, name: str, needle: Optional[str]) -> "QueryBuilder":
        """Plain substring containment, no LIKE wildcards."""
        if needle:
            self.clauses.append(f"instr({self._column(name)}, ?) > 0")
            self.params.append(needle)
        return self

    def build(self, prefix: str = "AND") -> Tuple[str, List[Any]]:
        """Return (sql, params). sql is empty or starts with prefix."""
        if not self.clauses:
            return "", []
        return f" {prefix} " + " AND ".join(self.clauses), list(self.params)
