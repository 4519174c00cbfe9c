from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bpavalidator.core.objects import ModelObject, ObjectType, PropertyBag
from bpavalidator.logging_config import get_logger

log = get_logger(__name__)

# Power BI "auto date/time" tables are generated, not authored
AUTO_DATE_TABLE_PREFIXES = ("DateTableTemplate_", "LocalDateTable_")

# INFO.COLUMNS / INFO.RELATIONSHIPS report enums as integers
_COLUMN_TYPES = {1: "Data", 2: "Calculated", 3: "RowNumber", 4: "CalculatedTableColumn"}
_DATA_TYPES = {
    1: "Automatic",
    2: "String",
    6: "Int64",
    8: "Double",
    9: "DateTime",
    10: "Decimal",
    11: "Boolean",
    17: "Binary",
    19: "Unknown",
    20: "Variant",
}
_CROSS_FILTER = {1: "OneDirection", 2: "BothDirections", 3: "Automatic"}
_CARDINALITY = {1: "One", 2: "Many"}


def _clean_record(raw: Dict[str, Any]) -> PropertyBag:
    """Unwrap DAX-style `[Key]` column names; everything else is kept as supplied."""
    bag = PropertyBag()
    for key, value in (raw or {}).items():
        k = str(key).strip()
        if k.startswith("[") and k.endswith("]"):
            k = k[1:-1]
        bag[k] = value
    return bag


def _pick(bag: PropertyBag, *keys: str) -> Optional[Any]:
    for k in keys:
        v = bag.get(k)
        if v is not None and v != "":
            return v
    return None


def _flag(value: Any) -> bool:
    # snapshots carry flags as booleans, 0/1 or "true"/"false" text
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return False


def _enum_name(value: Any, table: Dict[int, str]) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return table.get(value, str(value))
    if isinstance(value, str) and value.isdigit():
        return table.get(int(value), value)
    return value


def _display(table: Optional[str], name: Optional[str]) -> str:
    if table and name:
        return f"'{table}'[{name}]"
    if table:
        return f"'{table}'"
    return str(name) if name else ""


def _is_auto_date_table(name: str) -> bool:
    return any(name.startswith(p) for p in AUTO_DATE_TABLE_PREFIXES)


def normalize_model_record(raw: Optional[Dict[str, Any]]) -> ModelObject:
    bag = _clean_record(raw or {})
    name = str(_pick(bag, "Name", "ModelName", "DatabaseName") or "Model")
    bag["Name"] = name
    bag["ObjectTypeName"] = ObjectType.MODEL.value
    return ModelObject(name=name, type=ObjectType.MODEL, properties=bag)


def normalize_table(raw: Dict[str, Any]) -> ModelObject:
    bag = _clean_record(raw)
    name = _pick(bag, "Name", "TableName")
    expression = _pick(bag, "Expression")
    source_type = str(_pick(bag, "PartitionSourceType", "PartitionMode", "SourceType", "Type") or "").lower()

    calculated = (
        bool(name and _is_auto_date_table(str(name)))
        or source_type in ("calculated", "calculatedtable", "calculationgroup")
        or _flag(bag.get("IsCalculated"))
        or (expression is not None and source_type in ("", "unknown"))
    )
    obj_type = ObjectType.CALCULATED_TABLE if calculated else ObjectType.TABLE

    if name is None:
        name = f"Unknown_{obj_type.value}"
    bag["Name"] = str(name)
    bag["ObjectTypeName"] = obj_type.value
    bag.setdefault("IsHidden", False)
    return ModelObject(
        name=_display(str(name), None),
        type=obj_type,
        properties=bag,
        expression=str(expression) if expression is not None else None,
        table=str(name),
    )


def normalize_column(raw: Dict[str, Any]) -> Optional[ModelObject]:
    bag = _clean_record(raw)
    column_type = _enum_name(_pick(bag, "Type", "ColumnType"), _COLUMN_TYPES) or "Data"
    if str(column_type) == "RowNumber":
        return None

    expression = _pick(bag, "Expression")
    calculated = str(column_type) == "Calculated" or (
        expression is not None and str(column_type) != "CalculatedTableColumn"
    )
    obj_type = ObjectType.CALCULATED_COLUMN if calculated else ObjectType.DATA_COLUMN

    table = _pick(bag, "TableName", "Table")
    name = _pick(bag, "Name", "ExplicitName", "ColumnName", "InferredName")
    if name is None:
        name = f"Unknown_{obj_type.value}"
        log.debug("column_without_name", table=table)

    data_type = _pick(bag, "DataType", "ExplicitDataType")
    if data_type is not None:
        bag["DataType"] = _enum_name(data_type, _DATA_TYPES)
    bag["Type"] = "Calculated" if calculated else str(column_type)
    bag["Name"] = str(name)
    bag["ObjectTypeName"] = obj_type.value
    if table is not None:
        bag["TableName"] = str(table)
    bag.setdefault("IsHidden", False)
    return ModelObject(
        name=_display(str(table) if table is not None else None, str(name)),
        type=obj_type,
        properties=bag,
        expression=str(expression) if expression is not None else None,
        table=str(table) if table is not None else None,
    )


def normalize_measure(raw: Dict[str, Any]) -> ModelObject:
    bag = _clean_record(raw)
    table = _pick(bag, "TableName", "Table")
    name = _pick(bag, "Name", "MeasureName")
    if name is None:
        name = f"Unknown_{ObjectType.MEASURE.value}"
        log.debug("measure_without_name", table=table)
    expression = _pick(bag, "Expression")

    bag["Name"] = str(name)
    bag["ObjectTypeName"] = ObjectType.MEASURE.value
    if table is not None:
        bag["TableName"] = str(table)
    bag.setdefault("IsHidden", False)
    return ModelObject(
        name=_display(str(table) if table is not None else None, str(name)),
        type=ObjectType.MEASURE,
        properties=bag,
        expression=str(expression) if expression is not None else None,
        table=str(table) if table is not None else None,
    )


def normalize_relationship(raw: Dict[str, Any]) -> ModelObject:
    bag = _clean_record(raw)
    endpoints: Dict[str, Any] = {
        "FromTable": _pick(bag, "FromTable", "FromTableName"),
        "FromColumn": _pick(bag, "FromColumn", "FromColumnName"),
        "ToTable": _pick(bag, "ToTable", "ToTableName"),
        "ToColumn": _pick(bag, "ToColumn", "ToColumnName"),
    }
    for key, value in endpoints.items():
        if value is not None:
            bag[key] = str(value)

    cross_filter = _pick(bag, "CrossFilteringBehavior", "CrossFilterDirection")
    if cross_filter is not None:
        bag["CrossFilteringBehavior"] = _enum_name(cross_filter, _CROSS_FILTER)
    for key in ("FromCardinality", "ToCardinality"):
        if key in bag:
            bag[key] = _enum_name(bag[key], _CARDINALITY)
    bag.setdefault("IsActive", True)

    name = _pick(bag, "Name")
    if name is None:
        left = _display(endpoints["FromTable"], endpoints["FromColumn"])
        right = _display(endpoints["ToTable"], endpoints["ToColumn"])
        name = f"{left} -> {right}" if left and right else f"Unknown_{ObjectType.RELATIONSHIP.value}"
    bag["Name"] = str(name)
    bag["ObjectTypeName"] = ObjectType.RELATIONSHIP.value
    return ModelObject(name=str(name), type=ObjectType.RELATIONSHIP, properties=bag)


def _flatten_nested(tables: Iterable[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Pull columns/measures out of model.bim-style table records."""
    columns: List[Dict[str, Any]] = []
    measures: List[Dict[str, Any]] = []
    for t in tables:
        bag = _clean_record(t)
        table_name = _pick(bag, "Name", "TableName")
        for c in bag.get("Columns") or []:
            columns.append({"TableName": table_name, **c})
        for m in bag.get("Measures") or []:
            measures.append({"TableName": table_name, **m})
    return columns, measures


def normalize_model(snapshot: Dict[str, Any]) -> List[ModelObject]:
    """
    Turn a metadata snapshot into ModelObjects.

    The snapshot holds `model`, `tables`, `columns`, `measures` and
    `relationships` (any key casing). Table records may also nest their own
    `columns` / `measures` lists.
    """
    snap = PropertyBag(snapshot or {})
    raw_tables = list(snap.get("tables") or [])
    nested_columns, nested_measures = _flatten_nested(raw_tables)

    tables = [normalize_table(t) for t in raw_tables]
    columns = [
        c for c in (normalize_column(r) for r in list(snap.get("columns") or []) + nested_columns)
        if c is not None
    ]
    measures = [normalize_measure(m) for m in list(snap.get("measures") or []) + nested_measures]
    relationships = [normalize_relationship(r) for r in snap.get("relationships") or []]

    column_counts = Counter(c.table for c in columns)
    measure_counts = Counter(m.table for m in measures)
    for t in tables:
        t.properties.setdefault("ColumnCount", column_counts.get(t.table, 0))
        t.properties.setdefault("MeasureCount", measure_counts.get(t.table, 0))

    objects: List[ModelObject] = [normalize_model_record(snap.get("model"))]
    objects.extend(tables)
    objects.extend(columns)
    objects.extend(measures)
    objects.extend(relationships)

    log.info(
        "model_normalized",
        tables=len(tables),
        columns=len(columns),
        measures=len(measures),
        relationships=len(relationships),
    )
    return objects
