from __future__ import annotations

from typing import FrozenSet, List, Sequence, Set

from bpavalidator.core.errors import ScopeError
from bpavalidator.core.objects import ModelObject, ObjectType

SCOPE_TYPES = {
    "Model": {ObjectType.MODEL.value},
    "Table": {ObjectType.TABLE.value},
    "Tables": {ObjectType.TABLE.value, ObjectType.CALCULATED_TABLE.value},
    "CalculatedTable": {ObjectType.CALCULATED_TABLE.value},
    "Column": {ObjectType.DATA_COLUMN.value, ObjectType.CALCULATED_COLUMN.value},
    "Columns": {ObjectType.DATA_COLUMN.value, ObjectType.CALCULATED_COLUMN.value},
    "DataColumn": {ObjectType.DATA_COLUMN.value},
    "CalculatedColumn": {ObjectType.CALCULATED_COLUMN.value},
    "Measure": {ObjectType.MEASURE.value},
    "Measures": {ObjectType.MEASURE.value},
    "Relationship": {ObjectType.RELATIONSHIP.value},
    "SingleColumnRelationship": {ObjectType.RELATIONSHIP.value},
    "Relationships": {ObjectType.RELATIONSHIP.value},
}

# Object kinds the normalizer never produces; rules scoped only to these are excluded
UNSUPPORTED_SCOPES = frozenset({
    "KPI",
    "Hierarchy",
    "Level",
    "Perspective",
    "Partition",
    "Culture",
    "CalculationGroup",
    "CalculationItem",
    "ModelRole",
    "ModelRoleMember",
    "TablePermission",
    "ProviderDataSource",
    "StructuredDataSource",
    "NamedExpression",
    "Variation",
    "CalculatedTableColumn",
})


def scope_types(scope: str) -> FrozenSet[str]:
    if not isinstance(scope, str):
        raise ScopeError(f"rule scope must be a string, got {type(scope).__name__}")

    types: Set[str] = set()
    for token in scope.split(","):
        token = token.strip()
        if not token or token in UNSUPPORTED_SCOPES:
            continue
        # unknown tokens still match an object type spelled the same way
        types.update(SCOPE_TYPES.get(token, {token}))
    return frozenset(types)


def resolve_scope(scope: str, objects: Sequence[ModelObject]) -> List[ModelObject]:
    types = scope_types(scope)
    if not types:
        return []
    return [o for o in objects if o.type in types]
