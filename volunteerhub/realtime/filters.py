"""
Filter expressions.

A small query DSL understood by both the message store (compiled to SQL) and
the change feed (evaluated against published records), so a subscription and
a query can share the same filter object.

String form follows the ``column=op.value`` convention::

    recipient_id=eq.7f3c
    sender_id=neq.7f3c
    id=in.(1,2,3)
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Iterable, List

import sqlalchemy as sa


def _field(record: Any, column: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(column)
    return getattr(record, column, None)


def _same(left: Any, right: Any) -> bool:
    # Values parsed from filter strings arrive as text, ids may be integers
    if left == right:
        return True
    if left is None or right is None:
        return False
    return str(left) == str(right)


class Filter(ABC):
    """Base class for filter expressions."""

    @abstractmethod
    def matches(self, record: Any) -> bool:
        """Evaluate the filter against a record (mapping or object)."""

    @abstractmethod
    def to_clause(self, model):
        """Compile the filter to a SQLAlchemy clause over ``model``."""

    def __and__(self, other: "Filter") -> "Filter":
        return And(self, other)

    def __or__(self, other: "Filter") -> "Filter":
        return Or(self, other)


class Eq(Filter):
    def __init__(self, column: str, value: Any):
        self.column = column
        self.value = value

    def matches(self, record: Any) -> bool:
        return _same(_field(record, self.column), self.value)

    def to_clause(self, model):
        return getattr(model, self.column) == self.value

    def __repr__(self):
        return f"{self.column}=eq.{self.value}"


class Neq(Eq):
    def matches(self, record: Any) -> bool:
        return not super().matches(record)

    def to_clause(self, model):
        return getattr(model, self.column) != self.value

    def __repr__(self):
        return f"{self.column}=neq.{self.value}"


class In(Filter):
    def __init__(self, column: str, values: Iterable[Any]):
        self.column = column
        self.values = list(values)

    def matches(self, record: Any) -> bool:
        value = _field(record, self.column)
        return any(_same(value, candidate) for candidate in self.values)

    def to_clause(self, model):
        return getattr(model, self.column).in_(self.values)

    def __repr__(self):
        return f"{self.column}=in.({','.join(str(v) for v in self.values)})"


class And(Filter):
    def __init__(self, *filters: Filter):
        self.filters: List[Filter] = list(filters)

    def matches(self, record: Any) -> bool:
        return all(f.matches(record) for f in self.filters)

    def to_clause(self, model):
        return sa.and_(*(f.to_clause(model) for f in self.filters))

    def __repr__(self):
        return f"and({','.join(repr(f) for f in self.filters)})"


class Or(Filter):
    def __init__(self, *filters: Filter):
        self.filters: List[Filter] = list(filters)

    def matches(self, record: Any) -> bool:
        return any(f.matches(record) for f in self.filters)

    def to_clause(self, model):
        return sa.or_(*(f.to_clause(model) for f in self.filters))

    def __repr__(self):
        return f"or({','.join(repr(f) for f in self.filters)})"


def eq(column: str, value: Any) -> Filter:
    return Eq(column, value)


def neq(column: str, value: Any) -> Filter:
    return Neq(column, value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return In(column, values)


def and_(*filters: Filter) -> Filter:
    return And(*filters)


def or_(*filters: Filter) -> Filter:
    return Or(*filters)


def parse_filter(expression: str) -> Filter:
    """
    Parse a ``column=op.value`` expression.

    Raises:
        ValueError: If the expression is malformed or the operator is unknown
    """
    column, sep, rest = expression.partition("=")
    operator, dot, value = rest.partition(".")
    if not sep or not dot or not column.strip():
        raise ValueError(f"Malformed filter expression: {expression!r}")

    column = column.strip()
    if operator == "eq":
        return Eq(column, value)
    if operator == "neq":
        return Neq(column, value)
    if operator == "in":
        if not (value.startswith("(") and value.endswith(")")):
            raise ValueError(f"'in' filter needs a parenthesised list: {expression!r}")
        items = [item.strip() for item in value[1:-1].split(",") if item.strip()]
        return In(column, items)
    raise ValueError(f"Unknown filter operator {operator!r} in {expression!r}")
