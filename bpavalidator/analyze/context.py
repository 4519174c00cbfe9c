from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence

from bpavalidator.core.objects import ModelObject, ObjectRef, ObjectType

_TABLE_TYPES = (ObjectType.TABLE.value, ObjectType.CALCULATED_TABLE.value)
_COLUMN_TYPES = (ObjectType.DATA_COLUMN.value, ObjectType.CALCULATED_COLUMN.value)


def column_key(table: Optional[str], column: Optional[str]) -> str:
    return f"{table or ''}[{column or ''}]"


@dataclass(frozen=True)
class AnalysisContext:
    """
    Cross-object lookups derived once per run, before any rule evaluates.

    `current` is only set on the derived context used while evaluating the
    inner predicate of `UsedInRelationships.Any(...)`.
    """

    table_relationship_count: Dict[str, int] = field(default_factory=dict)
    columns_in_relationships: FrozenSet[str] = frozenset()
    column_relationship_count: Dict[str, int] = field(default_factory=dict)
    tables: Sequence[ModelObject] = ()
    columns: Sequence[ModelObject] = ()
    measures: Sequence[ModelObject] = ()
    relationships: Sequence[ModelObject] = ()
    tables_by_name: Dict[str, ModelObject] = field(default_factory=dict)
    aggregates: Dict[str, int] = field(default_factory=dict)
    model_name: str = "Model"
    current: Optional[ObjectRef] = None

    def relationships_for(self, obj: ModelObject) -> List[ModelObject]:
        """Relationships with an endpoint on `obj` (a table or a column)."""
        out: List[ModelObject] = []
        short = obj.short_name
        for rel in self.relationships:
            p = rel.properties
            for side in ("From", "To"):
                table = p.get(f"{side}Table")
                if obj.type in _TABLE_TYPES:
                    hit = table == short
                else:
                    hit = table == obj.table and p.get(f"{side}Column") == short
                if hit:
                    out.append(rel)
                    break
        return out


def build_context(objects: Sequence[ModelObject]) -> AnalysisContext:
    tables: List[ModelObject] = []
    columns: List[ModelObject] = []
    measures: List[ModelObject] = []
    relationships: List[ModelObject] = []
    model_name = "Model"
    type_counts: Counter = Counter()

    for obj in objects:
        type_counts[obj.type] += 1
        if obj.type in _TABLE_TYPES:
            tables.append(obj)
        elif obj.type in _COLUMN_TYPES:
            columns.append(obj)
        elif obj.type == ObjectType.MEASURE.value:
            measures.append(obj)
        elif obj.type == ObjectType.RELATIONSHIP.value:
            relationships.append(obj)
        elif obj.type == ObjectType.MODEL.value:
            model_name = obj.name

    table_rel_count: Counter = Counter()
    column_rel_count: Counter = Counter()
    bidirectional = many_to_many = inactive = 0
    for rel in relationships:
        p = rel.properties
        for side in ("From", "To"):
            table = p.get(f"{side}Table")
            if table:
                table_rel_count[str(table)] += 1
                column_rel_count[column_key(str(table), p.get(f"{side}Column"))] += 1
        if str(p.get("CrossFilteringBehavior") or "").lower() == "bothdirections":
            bidirectional += 1
        if str(p.get("FromCardinality") or "").lower() == "many" and str(p.get("ToCardinality") or "").lower() == "many":
            many_to_many += 1
        if p.get("IsActive") is False:
            inactive += 1

    aggregates = {
        "TableCount": len(tables),
        "CalculatedTableCount": type_counts[ObjectType.CALCULATED_TABLE.value],
        "ColumnCount": len(columns),
        "DataColumnCount": type_counts[ObjectType.DATA_COLUMN.value],
        "CalculatedColumnCount": type_counts[ObjectType.CALCULATED_COLUMN.value],
        "MeasureCount": len(measures),
        "RelationshipCount": len(relationships),
        "BidirectionalRelationshipCount": bidirectional,
        "ManyToManyRelationshipCount": many_to_many,
        "InactiveRelationshipCount": inactive,
    }

    return AnalysisContext(
        table_relationship_count=dict(table_rel_count),
        columns_in_relationships=frozenset(column_rel_count),
        column_relationship_count=dict(column_rel_count),
        tables=tuple(tables),
        columns=tuple(columns),
        measures=tuple(measures),
        relationships=tuple(relationships),
        tables_by_name={t.short_name: t for t in tables},
        aggregates=aggregates,
        model_name=model_name,
    )
