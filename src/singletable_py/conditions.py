from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from .codec import serialize_values
from .errors import InvalidConditionError
from .validation import NameValidationError, parse_field_path

type FieldPath = tuple[str, ...]
type ComparisonOp = Literal["=", "<>", "<", "<=", ">", ">="]

MaxInValues = 100


def _path(field_name: str | Sequence[str]) -> FieldPath:
    try:
        return parse_field_path(field_name)
    except NameValidationError as err:
        raise InvalidConditionError(str(err)) from err


@dataclass(frozen=True)
class Comparison:
    path: FieldPath
    op: ComparisonOp
    value: Any


@dataclass(frozen=True)
class Between:
    path: FieldPath
    low: Any
    high: Any


@dataclass(frozen=True)
class In:
    path: FieldPath
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Exists:
    path: FieldPath
    exists: bool = True


@dataclass(frozen=True)
class BeginsWith:
    path: FieldPath
    prefix: Any


@dataclass(frozen=True)
class Contains:
    path: FieldPath
    value: Any


@dataclass(frozen=True)
class And:
    conditions: tuple[Condition, ...]


@dataclass(frozen=True)
class Or:
    conditions: tuple[Condition, ...]


@dataclass(frozen=True)
class Not:
    condition: Condition


type Condition = Comparison | Between | In | Exists | BeginsWith | Contains | And | Or | Not

# Document-style input, e.g. {"$and": [{"age": {"$gt": 21}}, {"email": {"$exists": True}}]}
type CompositeCondition = Mapping[str, Any]


def eq(field_name: str, value: Any) -> Comparison:
    return Comparison(_path(field_name), "=", value)


def ne(field_name: str, value: Any) -> Comparison:
    return Comparison(_path(field_name), "<>", value)


def lt(field_name: str, value: Any) -> Comparison:
    return Comparison(_path(field_name), "<", value)


def lte(field_name: str, value: Any) -> Comparison:
    return Comparison(_path(field_name), "<=", value)


def gt(field_name: str, value: Any) -> Comparison:
    return Comparison(_path(field_name), ">", value)


def gte(field_name: str, value: Any) -> Comparison:
    return Comparison(_path(field_name), ">=", value)


def between(field_name: str, low: Any, high: Any) -> Between:
    return Between(_path(field_name), low, high)


def in_(field_name: str, values: Sequence[Any]) -> In:
    return In(_path(field_name), tuple(values))


def exists(field_name: str) -> Exists:
    return Exists(_path(field_name), True)


def not_exists(field_name: str) -> Exists:
    return Exists(_path(field_name), False)


def begins_with(field_name: str, prefix: Any) -> BeginsWith:
    return BeginsWith(_path(field_name), prefix)


def contains(field_name: str, value: Any) -> Contains:
    return Contains(_path(field_name), value)


def and_(*conditions: Condition) -> And:
    return And(tuple(conditions))


def or_(*conditions: Condition) -> Or:
    return Or(tuple(conditions))


def not_(condition: Condition) -> Not:
    return Not(condition)


_COMPARISON_OPERATORS: dict[str, ComparisonOp] = {
    "$eq": "=",
    "$neq": "<>",
    "$ne": "<>",
    "$lt": "<",
    "$lte": "<=",
    "$gt": ">",
    "$gte": ">=",
}


def _as_sequence(value: Any, op: str) -> Sequence[Any]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise InvalidConditionError(f"{op} requires a list")
    return value


def _parse_field(path: FieldPath, criteria: Any) -> list[Condition]:
    if not isinstance(criteria, Mapping) or not any(str(k).startswith("$") for k in criteria):
        return [Comparison(path, "=", criteria)]

    out: list[Condition] = []
    for op, operand in criteria.items():
        if op in _COMPARISON_OPERATORS:
            out.append(Comparison(path, _COMPARISON_OPERATORS[op], operand))
        elif op == "$exists":
            if not isinstance(operand, bool):
                raise InvalidConditionError("$exists requires a boolean")
            out.append(Exists(path, operand))
        elif op == "$between":
            bounds = _as_sequence(operand, op)
            if len(bounds) != 2:
                raise InvalidConditionError("$between requires two values")
            out.append(Between(path, bounds[0], bounds[1]))
        elif op == "$in":
            out.append(In(path, tuple(_as_sequence(operand, op))))
        elif op == "$beginsWith":
            out.append(BeginsWith(path, operand))
        elif op == "$contains":
            out.append(Contains(path, operand))
        else:
            raise InvalidConditionError(f"unsupported condition operator: {op}")
    return out


def parse_condition(condition: CompositeCondition) -> Condition:
    """Turn the document syntax into a typed condition tree."""
    if not isinstance(condition, Mapping):
        raise InvalidConditionError(f"condition must be a mapping (got {type(condition).__name__})")

    parts: list[Condition] = []
    for key, criteria in condition.items():
        if key in {"$and", "$or"}:
            children = [parse_condition(c) for c in _as_sequence(criteria, key)]
            if not children:
                raise InvalidConditionError(f"{key} requires at least one condition")
            parts.append(And(tuple(children)) if key == "$and" else Or(tuple(children)))
        elif key == "$not":
            parts.append(Not(parse_condition(criteria)))
        elif str(key).startswith("$"):
            raise InvalidConditionError(f"unsupported condition operator: {key}")
        else:
            parts.extend(_parse_field(_path(key), criteria))

    if not parts:
        raise InvalidConditionError("condition has no predicates")
    if len(parts) == 1:
        return parts[0]
    return And(tuple(parts))


def as_condition(condition: Condition | CompositeCondition) -> Condition:
    if isinstance(condition, (Comparison, Between, In, Exists, BeginsWith, Contains, And, Or, Not)):
        return condition
    return parse_condition(condition)


@dataclass(frozen=True)
class CompiledCondition:
    expression: str
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)

    def serialized_values(self) -> dict[str, Any]:
        return serialize_values(self.values)


class ExpressionBuilder:
    """Allocates placeholders for one DynamoDB request.

    Name placeholders are reused for repeated path segments, value
    placeholders are never reused. Numbering is monotonic within a builder.
    """

    def __init__(self, *, prefix: str = "c") -> None:
        self._prefix = prefix
        self._counter = 0
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._name_refs: dict[str, str] = {}

    def _next(self) -> int:
        n = self._counter
        self._counter += 1
        return n

    def name_ref(self, path: Sequence[str]) -> str:
        refs: list[str] = []
        for part in path:
            ref = self._name_refs.get(part)
            if ref is None:
                ref = f"#{self._prefix}{self._next()}"
                self._name_refs[part] = ref
                self.names[ref] = part
            refs.append(ref)
        return ".".join(refs)

    def value_ref(self, value: Any) -> str:
        ref = f":{self._prefix}{self._next()}"
        self.values[ref] = value
        return ref

    def lower(self, node: Condition, *, path_prefix: Sequence[str] = ()) -> str:
        expr, leaves = self._lower(node, tuple(path_prefix))
        if leaves == 0:
            raise InvalidConditionError("condition has no predicates")
        return expr

    def _lower(self, node: Condition, prefix: FieldPath) -> tuple[str, int]:
        if isinstance(node, (And, Or)):
            if not node.conditions:
                raise InvalidConditionError(f"{type(node).__name__} requires at least one condition")
            lowered = [self._lower(child, prefix) for child in node.conditions]
            joiner = " AND " if isinstance(node, And) else " OR "
            exprs = [e for e, _ in lowered]
            leaves = sum(n for _, n in lowered)
            if len(exprs) == 1:
                return exprs[0], leaves
            return "(" + joiner.join(exprs) + ")", leaves

        if isinstance(node, Not):
            inner, leaves = self._lower(node.condition, prefix)
            return f"NOT ({inner})", leaves

        if isinstance(node, Comparison):
            if node.op not in {"=", "<>", "<", "<=", ">", ">="}:
                raise InvalidConditionError(f"unsupported comparison operator: {node.op}")
            return f"{self._field(node.path, prefix)} {node.op} {self.value_ref(node.value)}", 1

        if isinstance(node, Between):
            name = self._field(node.path, prefix)
            return f"{name} BETWEEN {self.value_ref(node.low)} AND {self.value_ref(node.high)}", 1

        if isinstance(node, In):
            if not node.values:
                raise InvalidConditionError("$in requires at least one value")
            if len(node.values) > MaxInValues:
                raise InvalidConditionError(f"$in supports at most {MaxInValues} values")
            name = self._field(node.path, prefix)
            refs = [self.value_ref(v) for v in node.values]
            return f"{name} IN (" + ", ".join(refs) + ")", 1

        if isinstance(node, Exists):
            fn = "attribute_exists" if node.exists else "attribute_not_exists"
            return f"{fn}({self._field(node.path, prefix)})", 1

        if isinstance(node, BeginsWith):
            return f"begins_with({self._field(node.path, prefix)}, {self.value_ref(node.prefix)})", 1

        if isinstance(node, Contains):
            return f"contains({self._field(node.path, prefix)}, {self.value_ref(node.value)})", 1

        raise InvalidConditionError(f"invalid condition node: {type(node).__name__}")

    def _field(self, path: FieldPath, prefix: FieldPath) -> str:
        if not path:
            raise InvalidConditionError("condition field path cannot be empty")
        return self.name_ref((*prefix, *path))

    def compiled(self, expression: str) -> CompiledCondition:
        return CompiledCondition(expression=expression, names=dict(self.names), values=dict(self.values))


def compile_condition(
    condition: Condition | CompositeCondition,
    *,
    path_prefix: Sequence[str] = (),
) -> CompiledCondition:
    builder = ExpressionBuilder()
    return builder.compiled(builder.lower(as_condition(condition), path_prefix=path_prefix))
