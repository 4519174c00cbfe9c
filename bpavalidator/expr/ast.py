"""Syntax tree for BPA rule expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Name:
    """Dotted identifier such as `IsHidden`, `Table.IsHidden` or `DataType.Double`."""

    parts: Tuple[str, ...]


@dataclass(frozen=True)
class Member:
    """Property read on a computed value, e.g. `Name.Trim().Length`."""

    target: "Node"
    name: str


@dataclass(frozen=True)
class Call:
    """Method call; `target` is None for free functions like `char(9)`."""

    target: Optional["Node"]
    name: str
    args: Tuple["Node", ...] = ()


@dataclass(frozen=True)
class Comparison:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class BoolOp:
    op: str  # "and" | "or"
    operands: Tuple["Node", ...]


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class Unsupported:
    """An operand the grammar could not read; it evaluates to false."""

    text: str


Node = Union[Literal, Name, Member, Call, Comparison, BoolOp, Not, Unsupported]


@dataclass(frozen=True)
class EnumValue:
    """An enumeration member written as `EnumType.Member` in a rule."""

    type_name: str
    member: str
