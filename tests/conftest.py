"""Pytest configuration and fixtures."""

import copy
import json
from typing import Any, Dict, List

import pytest

from bpavalidator.analyze.context import AnalysisContext, build_context
from bpavalidator.analyze.normalizer import normalize_model
from bpavalidator.core.objects import ModelObject

# Star schema with one snowflaked dimension, an auto date table and a
# relationship whose columns disagree on data type.
SAMPLE_SNAPSHOT: Dict[str, Any] = {
    "model": {"Name": "Sales Model"},
    "tables": [
        {"Name": "Sales", "Description": "Fact table"},
        {"Name": "Customer", "Description": "Customers"},
        {"Name": "Geography"},
        {"Name": "LocalDateTable_1234"},
    ],
    "columns": [
        {"TableName": "Sales", "Name": "Amount", "DataType": "Double", "SourceColumn": "Amount", "SummarizeBy": "Sum"},
        {"TableName": "Sales", "Name": "ID", "DataType": "Int64", "SourceColumn": "ID"},
        {"TableName": "Sales", "Name": "CustomerKey", "DataType": "Int64", "SourceColumn": "CustomerKey", "IsHidden": False},
        {"TableName": "Sales", "Name": "Margin", "Type": "Calculated", "DataType": "Decimal", "Expression": "[Amount] * 0.1"},
        {"TableName": "Customer", "Name": "CustomerKey", "DataType": "Int64", "SourceColumn": "CustomerKey", "IsHidden": True},
        {"TableName": "Customer", "Name": "GeographyKey", "DataType": "String", "SourceColumn": "GeographyKey", "IsHidden": True},
        {"TableName": "Geography", "Name": "GeographyKey", "DataType": "Int64", "SourceColumn": "GeographyKey"},
    ],
    "measures": [
        {"TableName": "Sales", "Name": "Total Sales", "Expression": "SUM(Sales[Amount])", "FormatString": "#,0"},
        {"TableName": "Sales", "Name": "Safe Sales", "Expression": "IFERROR(SUM(Sales[Amount]),0)"},
    ],
    "relationships": [
        {
            "FromTable": "Sales",
            "FromColumn": "CustomerKey",
            "ToTable": "Customer",
            "ToColumn": "CustomerKey",
            "FromCardinality": "Many",
            "ToCardinality": "One",
            "CrossFilteringBehavior": "OneDirection",
        },
        {
            "FromTable": "Customer",
            "FromColumn": "GeographyKey",
            "ToTable": "Geography",
            "ToColumn": "GeographyKey",
            "FromCardinality": "Many",
            "ToCardinality": "One",
            "CrossFilteringBehavior": "BothDirections",
        },
    ],
}


def find(objects: List[ModelObject], name: str) -> ModelObject:
    """Look up a normalized object by its display name."""
    return next(o for o in objects if o.name == name)


@pytest.fixture
def snapshot() -> Dict[str, Any]:
    """A fresh copy of the sample metadata snapshot."""
    return copy.deepcopy(SAMPLE_SNAPSHOT)


@pytest.fixture
def objects(snapshot) -> List[ModelObject]:
    """Normalized objects of the sample model."""
    return normalize_model(snapshot)


@pytest.fixture
def context(objects) -> AnalysisContext:
    """Analysis context over the sample model."""
    return build_context(objects)


@pytest.fixture
def snapshot_file(tmp_path, snapshot):
    """The sample snapshot written to disk as a single JSON file."""
    path = tmp_path / "sales_model.json"
    path.write_text(json.dumps(snapshot), encoding="utf-8")
    return path
