"""Request targets and ``where`` clauses for the tabular store.

The store accepts a single filter predicate syntax:
``(field,eq,value)``, ``(field,in,a,b,c)``, joined with ``~and``.
Targets are rendered deterministically so that a target string is a stable
cache key.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from urllib.parse import quote

# Characters that delimit predicates in the store's filter syntax.
RESERVED = frozenset("(),~")


def _literal(value: object) -> str:
    """Render a field name or value, refusing anything that could add a predicate."""
    text = str(value)
    if RESERVED.intersection(text):
        raise ValueError(f"Filter operand {text!r} contains a reserved character")
    return text


@dataclass(frozen=True)
class Where:
    """An AND-composition of simple predicates."""

    clauses: tuple[str, ...] = ()

    @classmethod
    def eq(cls, field_name: str, value: object) -> "Where":
        return cls((f"({_literal(field_name)},eq,{_literal(value)})",))

    @classmethod
    def in_(cls, field_name: str, values: Iterable[object]) -> "Where":
        joined = ",".join(_literal(v) for v in values)
        return cls((f"({_literal(field_name)},in,{joined})",))

    def and_(self, other: "Where") -> "Where":
        return Where(self.clauses + other.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)

    def render(self) -> str:
        return "~and".join(self.clauses)


@dataclass(frozen=True)
class Target:
    """A store path plus ordered query parameters."""

    table_id: str
    record_id: str | None = None
    where: Where = field(default_factory=Where)
    fields: tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None

    @property
    def path(self) -> str:
        if self.record_id is None:
            return f"/{self.table_id}"
        return f"/{self.table_id}/{quote(str(self.record_id), safe='')}"

    def query_string(self) -> str:
        parts: list[str] = []
        if self.where:
            parts.append(f"where={quote(self.where.render(), safe='(),~')}")
        if self.fields:
            parts.append(f"fields={quote(','.join(self.fields), safe=',')}")
        if self.limit is not None:
            parts.append(f"limit={self.limit}")
        if self.offset is not None:
            parts.append(f"offset={self.offset}")
        return "&".join(parts)

    def render(self) -> str:
        """Path and query string, e.g. ``/tbl?where=(a,eq,1)&limit=10``."""
        query = self.query_string()
        return f"{self.path}?{query}" if query else self.path

    def page(self, limit: int, offset: int) -> "Target":
        return Target(
            table_id=self.table_id,
            record_id=self.record_id,
            where=self.where,
            fields=self.fields,
            limit=limit,
            offset=offset,
        )


def collection_target(table_id: str, *, where: Where | None = None,
                      fields: Iterable[str] = (), limit: int | None = None,
                      offset: int | None = None) -> Target:
    return Target(
        table_id=table_id,
        where=where or Where(),
        fields=tuple(fields),
        limit=limit,
        offset=offset,
    )


def record_target(table_id: str, record_id: str) -> Target:
    return Target(table_id=table_id, record_id=str(record_id))
