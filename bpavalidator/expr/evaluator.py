"""
Evaluator for BPA rule expressions.

`evaluate()` decides whether one rule expression holds (i.e. the rule is
violated) for one model object. It never raises: text outside the supported
subset, or a fault while reading the object, evaluates to False. An operand
the grammar cannot read is false on its own, so `A or <unreadable>` still
follows `A` and `not <unreadable>` is true.

Supported atoms, by shape:

    1=1, true, false                                literal truth
    RegEx.IsMatch(Expression, "(?i)iferror")        regex search
    string.IsNullOrWhitespace(Description)          blank test
    Name.StartsWith(" "), Expression.ToUpper().Contains("X")
    Expression.IndexOf("/", StringComparison.OrdinalIgnoreCase) >= 0
    Name.IndexOf(char(9)) > -1
    Name.Substring(0,1).ToUpper() != Name.Substring(0,1)
    DataType = DataType.Double, SummarizeBy <> AggregateFunction.None
    IsHidden, IsHidden == false, Table.IsHidden
    DataCategory == null
    FromColumn.DataType != ToColumn.DataType
    Columns.Count() > 100, Partitions.Count > 1
    UsedInRelationships.Any(), UsedInRelationships.Count() == 0
    UsedInRelationships.Any(FromTable.Name == current.Name)
    Prop >= 10, Prop = "Value"
"""

from __future__ import annotations

import math
import operator
import re
from dataclasses import replace
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, Tuple

from bpavalidator.analyze.context import AnalysisContext, column_key
from bpavalidator.core.objects import ModelObject, ObjectRef, ObjectType
from bpavalidator.expr.ast import BoolOp, Call, Comparison, EnumValue, Literal, Member, Name, Node, Not, Unsupported
from bpavalidator.expr.parser import ExpressionSyntaxError, parse_expression
from bpavalidator.logging_config import get_logger

log = get_logger(__name__)

ENUM_TYPES = frozenset({
    "AggregateFunction",
    "Alignment",
    "ColumnType",
    "CrossFilteringBehavior",
    "DataType",
    "DataViewType",
    "DateTimeRelationshipBehavior",
    "EncodingHintType",
    "ModeType",
    "ObjectType",
    "PartitionSourceType",
    "RegexOptions",
    "RelationshipEndCardinality",
    "SecurityFilteringBehavior",
    "StringComparison",
})

# enum members matched by containment rather than equality
_CONTAINMENT_ENUMS = frozenset({"DataType"})

_COLLECTIONS = frozenset({
    "UsedInRelationships",
    "Columns",
    "Measures",
    "Partitions",
    "Hierarchies",
    "Tables",
    "Relationships",
})

_TABLE_TYPES = (ObjectType.TABLE.value, ObjectType.CALCULATED_TABLE.value)

_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}
_OP_ALIASES = {"==": "=", "<>": "!="}
_DIGITS_RE = re.compile(r"-?\d+(\.\d+)?")


class UnsupportedExpression(Exception):
    """The expression uses a construct this evaluator does not interpret."""


_EMPTY_CONTEXT = AnalysisContext()


def evaluate(expression: str, obj: ModelObject, context: Optional[AnalysisContext] = None) -> bool:
    """Return True when `expression` holds for `obj`. Never raises."""
    ctx = context or _EMPTY_CONTEXT
    try:
        tree = parse_expression(expression)
    except ExpressionSyntaxError as exc:
        log.debug("expression_unparsable", expression=expression, error=str(exc))
        return False
    except Exception as exc:
        log.debug("expression_unreadable", expression=repr(expression)[:200], error=repr(exc))
        return False
    try:
        return _test(tree, obj, ctx)
    except Exception as exc:
        log.debug("expression_fault", expression=expression, object=getattr(obj, "name", None), error=repr(exc))
        return False


def _test(node: Node, obj: ModelObject, ctx: AnalysisContext) -> bool:
    """Boolean structure; an atom outside the supported subset is False."""
    match node:
        case BoolOp(op="or", operands=operands):
            return any(_test(o, obj, ctx) for o in operands)
        case BoolOp(op="and", operands=operands):
            return all(_test(o, obj, ctx) for o in operands)
        case Not(operand=operand):
            return not _test(operand, obj, ctx)
        case _:
            try:
                return truthy(_eval(node, obj, ctx))
            except UnsupportedExpression as exc:
                log.debug("atom_unsupported", object=obj.name, reason=str(exc))
                return False


def _eval(node: Node, obj: ModelObject, ctx: AnalysisContext) -> Any:
    match node:
        case Literal(value=value):
            return value
        case Name(parts=parts):
            return _resolve(parts, obj, ctx)
        case Member(target=target, name=name):
            return _member(_eval(target, obj, ctx), name)
        case Call():
            return _call(node, obj, ctx)
        case Comparison(op=op, left=left, right=right):
            return compare(op, _eval(left, obj, ctx), _eval(right, obj, ctx))
        case BoolOp() | Not():
            return _test(node, obj, ctx)
        case Unsupported(text=text):
            raise UnsupportedExpression(f"unreadable operand {text!r}")
        case _:
            raise UnsupportedExpression(f"node {type(node).__name__}")


# -------------------------- values --------------------------

def truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, EnumValue):
        return value.member
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def as_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and _DIGITS_RE.fullmatch(value.strip()):
        return float(value)
    return math.nan


def _is_numeric_operand(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    # an all-digit right-hand side compares numerically, whatever the left side holds
    return isinstance(value, str) and bool(_DIGITS_RE.fullmatch(value.strip()))


# -------------------------- names --------------------------

def _resolve(parts: Tuple[str, ...], obj: ModelObject, ctx: AnalysisContext) -> Any:
    head, rest = parts[0], parts[1:]

    if head in ENUM_TYPES and len(parts) == 2:
        return EnumValue(head, parts[1])

    if head == "current":
        ref = ctx.current
        if ref is None:
            raise UnsupportedExpression("'current' outside a relationship predicate")
        if not rest or rest == ("Name",):
            return ref.name
        if ref.obj is None:
            return None
        return _resolve(rest, ref.obj, replace(ctx, current=None))

    if head == "Table" and rest:
        if rest == ("Name",):
            return obj.table
        owner = ctx.tables_by_name.get(obj.table or "")
        if owner is None:
            return None
        return _resolve(rest, owner, ctx)

    if rest and rest[-1] in ("Count",) and parts[-2] in _COLLECTIONS:
        return _collection_count(parts[:-1], obj, ctx)

    if not rest:
        return _property(head, obj)

    return _dotted(parts, obj, ctx)


def _property(key: str, obj: ModelObject) -> Any:
    if key == "Expression" and obj.expression is not None:
        return obj.expression
    props = obj.properties
    if key in props:
        return props[key]
    # same key with the first letter's case flipped
    flipped = key[:1].swapcase() + key[1:]
    if flipped in props:
        return props[flipped]
    if key in ("ObjectType", "ObjectTypeName"):
        return obj.type
    if len(key) > 2 and key.startswith("Is") and key[2].isupper():
        return False
    return None


def _dotted(parts: Tuple[str, ...], obj: ModelObject, ctx: AnalysisContext) -> Any:
    props = obj.properties
    for key in (".".join(parts), "".join(parts)):
        if key in props:
            return props[key]

    if parts[-1] == "Length":
        return len(as_text(_resolve(parts[:-1], obj, ctx)))

    if len(parts) == 2 and obj.type == ObjectType.RELATIONSHIP.value:
        endpoint, attr = parts
        if attr == "Name" and endpoint in props:
            return props[endpoint]
        target = _relationship_endpoint(obj, endpoint, ctx)
        if target is not None:
            return _property(attr, target)

    if len(parts) == 2 and parts[1] == "Name" and parts[0] in props:
        return props[parts[0]]
    return None


def _relationship_endpoint(rel: ModelObject, endpoint: str, ctx: AnalysisContext) -> Optional[ModelObject]:
    p = rel.properties
    if endpoint in ("FromTable", "ToTable"):
        return ctx.tables_by_name.get(str(p.get(endpoint) or ""))
    if endpoint in ("FromColumn", "ToColumn"):
        side = endpoint[:-len("Column")]
        table, column = p.get(f"{side}Table"), p.get(endpoint)
        for c in ctx.columns:
            if c.table == table and c.short_name == column:
                return c
    return None


def _member(value: Any, name: str) -> Any:
    if name == "Length":
        return len(as_text(value))
    raise UnsupportedExpression(f"member {name}")


# -------------------------- collections --------------------------

def _owner_name(obj: ModelObject) -> str:
    return obj.short_name if obj.type in _TABLE_TYPES else (obj.table or "")


def _collection_count(path: Tuple[str, ...], obj: ModelObject, ctx: AnalysisContext) -> int:
    if path[0] == "Table" and len(path) > 1:
        owner = ctx.tables_by_name.get(obj.table or "")
        if owner is None:
            raise UnsupportedExpression("owning table not found")
        return _collection_count(path[1:], owner, ctx)
    if len(path) != 1:
        raise UnsupportedExpression(f"collection {'.'.join(path)}")

    name = path[0]
    if name == "UsedInRelationships":
        if obj.type in _TABLE_TYPES:
            return ctx.table_relationship_count.get(obj.short_name, 0)
        return ctx.column_relationship_count.get(column_key(obj.table, obj.short_name), 0)

    props = obj.properties
    singular = name[:-1] if name.endswith("s") else name
    for key in (f"{name}.Count", f"{name}Count", f"{singular}Count"):
        if key in props:
            return int(as_number(props[key]))
    value = props.get(name)
    if isinstance(value, (list, tuple)):
        return len(value)

    if obj.type in _TABLE_TYPES and name in ("Columns", "Measures"):
        pool = ctx.columns if name == "Columns" else ctx.measures
        return sum(1 for o in pool if o.table == obj.short_name)
    raise UnsupportedExpression(f"no count for {name}")


def _has_any(path: Tuple[str, ...], obj: ModelObject, ctx: AnalysisContext) -> bool:
    if path == ("UsedInRelationships",):
        if obj.type in _TABLE_TYPES:
            return ctx.table_relationship_count.get(obj.short_name, 0) > 0
        return column_key(obj.table, obj.short_name) in ctx.columns_in_relationships
    return _collection_count(path, obj, ctx) > 0


def _any_relationship(predicate: Node, obj: ModelObject, ctx: AnalysisContext) -> bool:
    inner = replace(ctx, current=ObjectRef(name=_owner_name(obj), obj=obj))
    return any(_test(predicate, rel, inner) for rel in ctx.relationships_for(obj))


# -------------------------- calls --------------------------

def _call(node: Call, obj: ModelObject, ctx: AnalysisContext) -> Any:
    target, name, args = node.target, node.name, node.args

    if target is None:
        if name.lower() == "char" and len(args) == 1:
            return chr(int(as_number(_eval(args[0], obj, ctx))))
        raise UnsupportedExpression(f"function {name}")

    if isinstance(target, Name):
        ns = target.parts[0].lower() if len(target.parts) == 1 else ""
        if ns == "regex" and name == "IsMatch":
            return _regex_match(*[_eval(a, obj, ctx) for a in args])
        if ns == "string" and name in ("IsNullOrWhitespace", "IsNullOrWhiteSpace", "IsNullOrEmpty"):
            if len(args) != 1:
                raise UnsupportedExpression(f"string.{name} arity")
            value = _eval(args[0], obj, ctx)
            if value is None:
                return True
            text = as_text(value)
            return text == "" if name == "IsNullOrEmpty" else text.strip() == ""
        if target.parts[-1] in _COLLECTIONS and name in ("Count", "Any"):
            if name == "Count" and not args:
                return _collection_count(target.parts, obj, ctx)
            if name == "Any" and not args:
                return _has_any(target.parts, obj, ctx)
            if name == "Any" and len(args) == 1 and target.parts == ("UsedInRelationships",):
                return _any_relationship(args[0], obj, ctx)
            raise UnsupportedExpression(f"{'.'.join(target.parts)}.{name} with arguments")

    value = _eval(target, obj, ctx)
    return _string_method(value, name, [_eval(a, obj, ctx) for a in args])


def _ignore_case(args: list) -> bool:
    for a in args:
        if isinstance(a, EnumValue) and a.member.endswith("IgnoreCase"):
            return True
        if a is True:
            return True
    return False


def _string_method(value: Any, name: str, args: list) -> Any:
    text = as_text(value)

    if name in ("ToUpper", "ToUpperInvariant"):
        return text.upper()
    if name in ("ToLower", "ToLowerInvariant"):
        return text.lower()
    if name == "Trim":
        return text.strip()
    if name == "TrimStart":
        return text.lstrip()
    if name == "TrimEnd":
        return text.rstrip()
    if name == "ToString":
        return text

    if name in ("StartsWith", "EndsWith", "Contains", "Equals", "IndexOf", "LastIndexOf"):
        if not args:
            raise UnsupportedExpression(f"{name} without argument")
        needle = as_text(args[0])
        if _ignore_case(args[1:]):
            text, needle = text.lower(), needle.lower()
        if name == "StartsWith":
            return text.startswith(needle)
        if name == "EndsWith":
            return text.endswith(needle)
        if name == "Contains":
            return needle in text
        if name == "Equals":
            return text == needle
        if name == "IndexOf":
            return text.find(needle)
        return text.rfind(needle)

    if name == "Substring":
        start = int(as_number(args[0])) if args else 0
        length = int(as_number(args[1])) if len(args) > 1 else len(text) - start
        if start < 0 or length < 0 or start + length > len(text):
            raise UnsupportedExpression("Substring out of range")
        return text[start:start + length]

    if name == "Replace" and len(args) == 2:
        return text.replace(as_text(args[0]), as_text(args[1]))

    raise UnsupportedExpression(f"method {name}")


@lru_cache(maxsize=512)
def _compile(pattern: str, ignore_case: bool) -> "re.Pattern[str]":
    flags = 0
    if "(?i)" in pattern:
        # inline flags are only legal at the start in Python; lift them anywhere
        pattern = pattern.replace("(?i)", "")
        ignore_case = True
    if ignore_case:
        flags |= re.IGNORECASE
    return re.compile(pattern, flags)


def _regex_match(subject: Any = None, pattern: Any = None, *options: Any) -> bool:
    if not isinstance(pattern, str):
        raise UnsupportedExpression("RegEx.IsMatch needs a string pattern")
    return _compile(pattern, _ignore_case(list(options))).search(as_text(subject)) is not None


# -------------------------- comparison --------------------------

def _enum_equals(expected: EnumValue, actual: Any) -> bool:
    if actual is None:
        return False
    got = actual.member if isinstance(actual, EnumValue) else as_text(actual)
    want = expected.member.lower()
    got = got.lower()
    if expected.type_name in _CONTAINMENT_ENUMS:
        return want in got
    return got == want or got.endswith("." + want)


def compare(op: str, left: Any, right: Any) -> bool:
    op = _OP_ALIASES.get(op, op)
    if op not in _OPS:
        raise UnsupportedExpression(f"operator {op}")

    if isinstance(left, EnumValue) or isinstance(right, EnumValue):
        if op not in ("=", "!="):
            raise UnsupportedExpression("ordering on enum values")
        expected, actual = (right, left) if isinstance(right, EnumValue) else (left, right)
        equal = _enum_equals(expected, actual)
        return equal if op == "=" else not equal

    if left is None and right is None:
        return op in ("=", ">=", "<=")
    if right is None:
        # `Prop == null` with the property present
        return op == "!="

    if isinstance(left, bool) or isinstance(right, bool):
        if op not in ("=", "!="):
            raise UnsupportedExpression("ordering on booleans")
        return _OPS[op](_as_bool(left), _as_bool(right))

    if _is_numeric_operand(right):
        return _OPS[op](as_number(left), as_number(right))

    # a missing property reads as an empty string here
    return _OPS[op](as_text(left), as_text(right))


def _as_bool(value: Any) -> bool:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    return truthy(value)
