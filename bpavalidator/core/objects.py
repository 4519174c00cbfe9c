from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple


class ObjectType(str, Enum):
    MODEL = "Model"
    TABLE = "Table"
    CALCULATED_TABLE = "CalculatedTable"
    DATA_COLUMN = "DataColumn"
    CALCULATED_COLUMN = "CalculatedColumn"
    MEASURE = "Measure"
    RELATIONSHIP = "Relationship"


class PropertyBag(MutableMapping):
    """
    String-keyed property map where lookups ignore key casing.

    `bag["isHidden"]`, `bag["IsHidden"]` and `bag["ISHIDDEN"]` address the same
    entry. Iteration yields keys in insertion order, spelled as first supplied.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, **kwargs: Any):
        self._items: Dict[str, Tuple[str, Any]] = {}
        self.update(data or {}, **kwargs)

    def __getitem__(self, key: str) -> Any:
        return self._items[key.lower()][1]

    def __setitem__(self, key: str, value: Any) -> None:
        folded = key.lower()
        original = self._items[folded][0] if folded in self._items else key
        self._items[folded] = (original, value)

    def __delitem__(self, key: str) -> None:
        del self._items[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._items

    def __repr__(self) -> str:
        return f"PropertyBag({dict(self)!r})"


@dataclass
class ModelObject:
    name: str
    type: str
    properties: PropertyBag = field(default_factory=PropertyBag)
    expression: Optional[str] = None
    table: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.type, ObjectType):
            self.type = self.type.value
        if not self.name:
            self.name = f"Unknown_{self.type}"
        if not isinstance(self.properties, PropertyBag):
            self.properties = PropertyBag(self.properties)

    @property
    def short_name(self) -> str:
        return str(self.properties.get("Name") or self.name)


@dataclass(frozen=True)
class ObjectRef:
    """Back-reference to the object under test while a nested predicate runs."""

    name: str
    obj: Optional[ModelObject] = None
