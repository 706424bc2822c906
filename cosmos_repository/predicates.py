"""
Predicate expressions and type-discriminator composition.

Predicates are small immutable expression trees built from ``Field``
comparisons and combined with ``&``, ``|`` and ``~``:

    >>> from cosmos_repository.predicates import Field
    >>> cheap = (Field("price") < 10) & Field("category").is_defined()

Every predicate can be evaluated against a document in memory and
rendered to a parameterized Cosmos SQL ``WHERE`` fragment. Evaluation
follows the store's three-valued logic: a comparison against a missing
field is undefined, and an undefined result never matches.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .exceptions import ValidationError
from .items import TYPE_FIELD

_UNDEFINED = object()

# Comparison operators and their SQL spelling
_SQL_OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "lt": "<",
    "le": "<=",
    "gt": ">",
    "ge": ">=",
}


def _lookup(doc: dict[str, Any], path: str) -> Any:
    """Resolve a dotted path in a document, or _UNDEFINED when absent."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _UNDEFINED
        current = current[part]
    return current


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list | tuple):
        return "array"
    return "object"


def _and(left: bool | None, right: bool | None) -> bool | None:
    if left is False or right is False:
        return False
    if left is None or right is None:
        return None
    return True


def _or(left: bool | None, right: bool | None) -> bool | None:
    if left is True or right is True:
        return True
    if left is None or right is None:
        return None
    return False


class SqlRenderContext:
    """Collects query parameters while a predicate is rendered."""

    def __init__(self, alias: str = "c"):
        self.alias = alias
        self.parameters: list[dict[str, Any]] = []

    def bind(self, value: Any) -> str:
        name = f"@p{len(self.parameters)}"
        self.parameters.append({"name": name, "value": value})
        return name

    def ref(self, path: str) -> str:
        return self.alias + "".join(f'["{part}"]' for part in path.split("."))


class Predicate(ABC):
    """Base class for predicate expressions."""

    @abstractmethod
    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        """Evaluate against a document. None means undefined."""

    @abstractmethod
    def render(self, ctx: SqlRenderContext) -> str:
        """Render as a SQL boolean expression."""

    def matches(self, doc: dict[str, Any]) -> bool:
        """True only when the predicate evaluates to true."""
        return self.evaluate(doc) is True

    def __and__(self, other: Predicate) -> Predicate:
        return And(self, other)

    def __or__(self, other: Predicate) -> Predicate:
        return Or(self, other)

    def __invert__(self) -> Predicate:
        return Not(self)


@dataclass(frozen=True)
class Comparison(Predicate):
    path: str
    op: str
    value: Any

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        actual = _lookup(doc, self.path)
        if actual is _UNDEFINED:
            return None
        if self.op in ("eq", "ne"):
            equal = _kind(actual) == _kind(self.value) and actual == self.value
            return equal if self.op == "eq" else not equal
        if _kind(actual) != _kind(self.value) or _kind(actual) not in ("number", "string"):
            return None
        if self.op == "lt":
            return actual < self.value
        if self.op == "le":
            return actual <= self.value
        if self.op == "gt":
            return actual > self.value
        return actual >= self.value

    def render(self, ctx: SqlRenderContext) -> str:
        return f"{ctx.ref(self.path)} {_SQL_OPERATORS[self.op]} {ctx.bind(self.value)}"


@dataclass(frozen=True)
class IsDefined(Predicate):
    path: str

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        return _lookup(doc, self.path) is not _UNDEFINED

    def render(self, ctx: SqlRenderContext) -> str:
        return f"IS_DEFINED({ctx.ref(self.path)})"


@dataclass(frozen=True)
class InValues(Predicate):
    path: str
    values: tuple[Any, ...]

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        actual = _lookup(doc, self.path)
        if actual is _UNDEFINED:
            return None
        return any(_kind(actual) == _kind(v) and actual == v for v in self.values)

    def render(self, ctx: SqlRenderContext) -> str:
        return f"ARRAY_CONTAINS({ctx.bind(list(self.values))}, {ctx.ref(self.path)})"


@dataclass(frozen=True)
class StringMatch(Predicate):
    """CONTAINS / STARTSWITH over a string field."""

    path: str
    function: str
    value: str

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        actual = _lookup(doc, self.path)
        if not isinstance(actual, str):
            return None
        if self.function == "CONTAINS":
            return self.value in actual
        return actual.startswith(self.value)

    def render(self, ctx: SqlRenderContext) -> str:
        return f"{self.function}({ctx.ref(self.path)}, {ctx.bind(self.value)})"


@dataclass(frozen=True)
class And(Predicate):
    left: Predicate
    right: Predicate

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        return _and(self.left.evaluate(doc), self.right.evaluate(doc))

    def render(self, ctx: SqlRenderContext) -> str:
        return f"({self.left.render(ctx)} AND {self.right.render(ctx)})"


@dataclass(frozen=True)
class Or(Predicate):
    left: Predicate
    right: Predicate

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        return _or(self.left.evaluate(doc), self.right.evaluate(doc))

    def render(self, ctx: SqlRenderContext) -> str:
        return f"({self.left.render(ctx)} OR {self.right.render(ctx)})"


@dataclass(frozen=True)
class Not(Predicate):
    operand: Predicate

    def evaluate(self, doc: dict[str, Any]) -> bool | None:
        result = self.operand.evaluate(doc)
        return None if result is None else not result

    def render(self, ctx: SqlRenderContext) -> str:
        return f"(NOT {self.operand.render(ctx)})"


class Field:
    """Reference to a (possibly nested, dot-separated) document field."""

    __slots__ = ("path",)

    def __init__(self, path: str):
        if not path or any(not part for part in path.split(".")):
            raise ValidationError("path", "field path must be non-empty", path)
        self.path = path

    def __repr__(self) -> str:
        return f"Field({self.path!r})"

    def __eq__(self, value: Any) -> Comparison:  # type: ignore[override]
        return Comparison(self.path, "eq", value)

    def __ne__(self, value: Any) -> Comparison:  # type: ignore[override]
        return Comparison(self.path, "ne", value)

    def __lt__(self, value: Any) -> Comparison:
        return Comparison(self.path, "lt", value)

    def __le__(self, value: Any) -> Comparison:
        return Comparison(self.path, "le", value)

    def __gt__(self, value: Any) -> Comparison:
        return Comparison(self.path, "gt", value)

    def __ge__(self, value: Any) -> Comparison:
        return Comparison(self.path, "ge", value)

    __hash__ = None  # type: ignore[assignment]

    def is_defined(self) -> IsDefined:
        return IsDefined(self.path)

    def in_(self, values: Iterable[Any]) -> InValues:
        return InValues(self.path, tuple(values))

    def contains(self, text: str) -> StringMatch:
        return StringMatch(self.path, "CONTAINS", text)

    def starts_with(self, text: str) -> StringMatch:
        return StringMatch(self.path, "STARTSWITH", text)


def render_sql(predicate: Predicate, alias: str = "c") -> tuple[str, list[dict[str, Any]]]:
    """Render a predicate to a WHERE fragment and its parameters."""
    ctx = SqlRenderContext(alias)
    return predicate.render(ctx), ctx.parameters


def build_query(
    predicate: Predicate | None,
    select: str = "*",
    alias: str = "c",
) -> tuple[str, list[dict[str, Any]]]:
    """Build a full SELECT statement for a predicate.

    Args:
        predicate: Filter to apply, or None for every document
        select: Projection, e.g. ``*`` or ``VALUE COUNT(1)``
        alias: Container alias used in the query

    Returns:
        Tuple of (query text, query parameters)
    """
    query = f"SELECT {select} FROM {alias}"
    if predicate is None:
        return query, []
    clause, parameters = render_sql(predicate, alias)
    return f"{query} WHERE {clause}", parameters


class PredicateComposer:
    """Adds the type-discriminator clause to caller predicates.

    Untyped documents (no ``type`` field) match every entity kind so
    documents written before the discriminator existed stay readable.
    """

    def type_clause(self, target_type_name: str) -> Predicate:
        type_field = Field(TYPE_FIELD)
        return ~type_field.is_defined() | (type_field == target_type_name)

    def build(self, target_type_name: str, predicate: Predicate | None = None) -> Predicate:
        """Combine an optional caller predicate with the discriminator clause.

        The caller predicate is AND-ed in unchanged; the result is a new
        expression and neither input is modified.
        """
        if not target_type_name:
            raise ValidationError("target_type_name", "must be a non-empty string")
        clause = self.type_clause(target_type_name)
        if predicate is None:
            return clause
        if not isinstance(predicate, Predicate):
            raise ValidationError("predicate", f"expected a Predicate, got {type(predicate).__name__}")
        return And(predicate, clause)
