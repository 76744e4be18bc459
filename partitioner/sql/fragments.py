"""
Typed pieces of SQL text. Every identifier and timestamp that goes into a generated
statement is wrapped in one of these, so quoting happens here and nowhere else.

Identifiers are quoted with SQLAlchemy's PostgreSQL identifier preparer, which only
quotes when it has to: plain lowercase names render bare, keeping generated names
identical to what the catalog reports back.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.dialects import postgresql

from partitioner.models import DEFAULT_FORMAT, TimestampFormat

_PREPARER = postgresql.dialect().identifier_preparer

COMPARISON_OPERATORS = ("<", ">=")


class Fragment(ABC):
    @abstractmethod
    def render(self) -> str:
        """SQL text of this fragment."""

    def __str__(self):
        return self.render()


@dataclass(frozen=True)
class Identifier(Fragment):
    name: str

    def render(self) -> str:
        return _PREPARER.quote(self.name)


@dataclass(frozen=True)
class QualifiedName(Fragment):
    """A schema-qualified relation or function name. schema=None renders the bare name."""

    name: str
    schema: Optional[str] = None

    def render(self) -> str:
        if not self.schema:
            return _PREPARER.quote(self.name)
        return f"{_PREPARER.quote_schema(self.schema)}.{_PREPARER.quote(self.name)}"


@dataclass(frozen=True)
class RowField(Fragment):
    """A column of the row being inserted, as seen from a trigger: NEW.<column>."""

    column: str

    def render(self) -> str:
        return f"NEW.{_PREPARER.quote(self.column)}"


@dataclass(frozen=True)
class TimestampLiteral(Fragment):
    value: datetime
    fmt: TimestampFormat = field(default=DEFAULT_FORMAT)

    def render(self) -> str:
        return f"'{self.fmt.to_sql(self.value)}'::timestamp without time zone"


@dataclass(frozen=True)
class Comparison(Fragment):
    left: Fragment
    operator: str
    right: TimestampLiteral

    def __post_init__(self):
        if self.operator not in COMPARISON_OPERATORS:
            raise ValueError(f"Unsupported comparison operator {self.operator!r}")

    def render(self) -> str:
        return f"{self.left.render()} {self.operator} {self.right.render()}"


@dataclass(frozen=True)
class RangeTest(Fragment):
    """Half-open range test: lower <= left < upper. lower=None tests the upper bound only."""

    left: Fragment
    upper: TimestampLiteral
    lower: Optional[TimestampLiteral] = None

    def render(self) -> str:
        below = Comparison(self.left, "<", self.upper).render()
        if self.lower is None:
            return below
        return f"{Comparison(self.left, '>=', self.lower).render()} AND {below}"


@dataclass(frozen=True)
class CheckClause(Fragment):
    constraint: Identifier
    condition: Comparison

    def render(self) -> str:
        return f"CONSTRAINT {self.constraint.render()} CHECK ({self.condition.render()})"
