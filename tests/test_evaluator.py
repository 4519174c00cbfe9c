"""Unit tests for rule expression evaluation."""

import pytest

from bpavalidator.analyze.context import build_context
from bpavalidator.core.objects import ModelObject
from bpavalidator.expr.evaluator import compare, evaluate

from conftest import find


def _obj(name="Sales", type="Table", expression=None, table=None, **props):
    props.setdefault("Name", name)
    return ModelObject(name=name, type=type, properties=props, expression=expression, table=table)


class TestScenarios:
    """End-to-end expression checks on the sample model."""

    def test_floating_point_data_type(self, objects, context):
        """Test that a Double column matches and an Int64 column does not."""
        expr = "DataType = DataType.Double"
        assert evaluate(expr, find(objects, "'Sales'[Amount]"), context) is True
        assert evaluate(expr, find(objects, "'Sales'[ID]"), context) is False

    def test_iferror_regex(self, objects, context):
        """Test a regex match on the measure expression."""
        expr = 'RegEx.IsMatch(Expression, "IFERROR")'
        assert evaluate(expr, find(objects, "'Sales'[Safe Sales]"), context) is True
        assert evaluate(expr, find(objects, "'Sales'[Total Sales]"), context) is False

    def test_visible_and_unused_in_relationships(self, objects, context):
        """Test a relationship participation check combined with visibility."""
        expr = "IsHidden == false and not UsedInRelationships.Any()"
        assert evaluate(expr, find(objects, "'Sales'[Amount]"), context) is True
        assert evaluate(expr, find(objects, "'Customer'[CustomerKey]"), context) is False
        assert evaluate(expr, find(objects, "'Sales'[CustomerKey]"), context) is False


class TestBooleanStructure:
    """Tests for literals and boolean operators."""

    def test_literals(self):
        """Test literal truth."""
        obj = _obj()
        assert evaluate("1=1", obj) is True
        assert evaluate("true", obj) is True
        assert evaluate("false", obj) is False

    def test_symbolic_operators(self, objects, context):
        """Test && and || forms."""
        amount = find(objects, "'Sales'[Amount]")
        assert evaluate("IsHidden || DataType = DataType.Double", amount, context) is True
        assert evaluate("IsHidden && true", amount, context) is False

    def test_parenthesised_alternatives(self, objects, context):
        """Test grouping with or inside and."""
        expr = "(DataType == DataType.Int64 or DataType == DataType.Double) and not IsHidden"
        assert evaluate(expr, find(objects, "'Sales'[Amount]"), context) is True
        assert evaluate(expr, find(objects, "'Customer'[CustomerKey]"), context) is False

    def test_bare_boolean_property(self):
        """Test a boolean property read on its own, and a missing Is-flag."""
        obj = _obj(IsHidden=True)
        assert evaluate("IsHidden", obj) is True
        assert evaluate("IsKey", obj) is False
        assert evaluate("IsKey == false", obj) is True

    def test_numeric_flag(self):
        """Test that a flag stored as 1 or 0 reads as true or false."""
        assert evaluate("IsHidden", _obj(IsHidden=1)) is True
        assert evaluate("IsHidden == true", _obj(IsHidden=1)) is True
        assert evaluate("IsHidden", _obj(IsHidden=0)) is False
        assert evaluate("not IsHidden", _obj(IsHidden=0)) is True


class TestStringOperations:
    """Tests for string helpers and regex."""

    def test_case_insensitive_regex_prefix(self):
        """Test that (?i) switches the regex to ignore case."""
        obj = _obj(type="Measure", expression="iferror(1, 0)")
        assert evaluate('RegEx.IsMatch(Expression, "(?i)IFERROR")', obj) is True
        assert evaluate('RegEx.IsMatch(Expression, "IFERROR")', obj) is False

    def test_inline_ignore_case_after_anchor(self):
        """Test that (?i) anywhere in the pattern ignores case."""
        obj = _obj(name="SALES")
        assert evaluate('RegEx.IsMatch(Name, "^(?i)sales")', obj) is True
        assert evaluate('RegEx.IsMatch(Name, "^sales")', obj) is False

    def test_null_or_whitespace(self, objects, context):
        """Test blank checks on a missing and a present description."""
        expr = "string.IsNullOrWhitespace(Description)"
        assert evaluate(expr, find(objects, "'Geography'"), context) is True
        assert evaluate(expr, find(objects, "'Sales'"), context) is False
        assert evaluate(expr, _obj(Description="   ")) is True

    def test_starts_and_ends_with(self):
        """Test prefix and suffix checks on the name."""
        obj = _obj(name=" Sales ")
        assert evaluate('Name.StartsWith(" ") or Name.EndsWith(" ")', obj) is True
        assert evaluate('Name.StartsWith(" ")', _obj()) is False

    def test_upper_contains(self, objects, context):
        """Test a chained ToUpper().Contains()."""
        table = find(objects, "'LocalDateTable_1234'")
        assert evaluate('Name.ToUpper().Contains("DATE")', table, context) is True

    def test_index_of_ignore_case(self, objects, context):
        """Test IndexOf with and without an ignore-case comparison."""
        measure = find(objects, "'Sales'[Total Sales]")
        assert evaluate('Expression.IndexOf("sum(", StringComparison.OrdinalIgnoreCase) >= 0', measure, context) is True
        assert evaluate('Expression.IndexOf("sum(") >= 0', measure, context) is False

    def test_control_characters(self):
        """Test char(n) against a name holding a tab."""
        expr = "Name.IndexOf(char(9)) > -1 or Name.IndexOf(char(10)) > -1"
        assert evaluate(expr, _obj(name="Bad\tName")) is True
        assert evaluate(expr, _obj(name="Good Name")) is False

    def test_first_letter_case(self):
        """Test the substring based capitalization check."""
        expr = "Name.Substring(0,1).ToUpper() != Name.Substring(0,1)"
        assert evaluate(expr, _obj(name="sales")) is True
        assert evaluate(expr, _obj(name="Sales")) is False

    def test_substring_out_of_range(self):
        """Test that a substring past the end is false, not an error."""
        assert evaluate("Name.Substring(0,1).ToUpper() != Name.Substring(0,1)", _obj(name="x", Name="")) is False

    def test_length_member(self):
        """Test .Length on a property and on a call result."""
        obj = _obj(name="Sales ")
        assert evaluate("Name.Length = 6", obj) is True
        assert evaluate("Name.Trim().Length = 5", obj) is True


class TestEnums:
    """Tests for enum comparisons."""

    def test_data_type_containment(self, objects, context):
        """Test that DataType members match by containment."""
        assert evaluate("DataType = DataType.Int", find(objects, "'Sales'[ID]"), context) is True

    def test_not_equal_enum(self):
        """Test <> against an enum member."""
        expr = "SummarizeBy <> AggregateFunction.None"
        assert evaluate(expr, _obj(type="DataColumn", SummarizeBy="Sum")) is True
        assert evaluate(expr, _obj(type="DataColumn", SummarizeBy="None")) is False

    def test_qualified_value(self):
        """Test that a value spelled with its enum type still matches."""
        obj = _obj(type="Relationship", CrossFilteringBehavior="CrossFilteringBehavior.BothDirections")
        assert evaluate("CrossFilteringBehavior == CrossFilteringBehavior.BothDirections", obj) is True

    def test_ordering_on_enum_is_false(self):
        """Test that ordering an enum is outside the supported subset."""
        assert evaluate("DataType > DataType.Double", _obj(DataType="Double")) is False


class TestPropertiesAndNulls:
    """Tests for property reads, null checks and generic comparisons."""

    def test_owning_table_property(self):
        """Test Table.X on a column reads the owning table."""
        hidden = _obj(name="'Hidden'", table="Hidden", Name="Hidden", IsHidden=True)
        col = _obj(name="'Hidden'[Key]", type="DataColumn", table="Hidden", Name="Key")
        context = build_context([hidden, col])
        assert evaluate("Table.IsHidden", col, context) is True
        assert evaluate('Table.Name = "Hidden"', col, context) is True

    def test_null_checks(self):
        """Test == null and != null on missing and present properties."""
        assert evaluate("DataCategory == null", _obj()) is True
        assert evaluate("DataCategory == null", _obj(DataCategory="Time")) is False
        assert evaluate("DataCategory != null", _obj(DataCategory="Time")) is True

    def test_property_lookup_ignores_casing(self):
        """Test that rule casing need not match snapshot casing."""
        assert evaluate("IsHidden", _obj(isHidden=True)) is True

    def test_numeric_and_string_comparisons(self):
        """Test generic ordering on numbers and strings."""
        obj = _obj(RowCount=5000)
        assert evaluate("RowCount > 1000", obj) is True
        assert evaluate('RowCount > "1000"', obj) is True
        assert evaluate('Name = "Sales"', obj) is True
        assert evaluate('Name > "A"', obj) is True

    def test_digit_string_compares_numerically(self):
        """Test that an all-digit right-hand side compares as a number."""
        assert evaluate('Code = "42"', _obj(Code="0042")) is True

    def test_missing_property_reads_as_empty_text(self):
        """Test that a missing property compares as an empty string."""
        assert evaluate('FormatString = ""', _obj()) is True
        assert evaluate('FormatString <> "0.0%"', _obj()) is True

    def test_relationship_endpoint_columns(self, objects, context):
        """Test FromColumn.X / ToColumn.X through the endpoint columns."""
        expr = "FromColumn.DataType != ToColumn.DataType"
        mismatched = find(objects, "'Customer'[GeographyKey] -> 'Geography'[GeographyKey]")
        matched = find(objects, "'Sales'[CustomerKey] -> 'Customer'[CustomerKey]")
        assert evaluate(expr, mismatched, context) is True
        assert evaluate(expr, matched, context) is False

    def test_concatenated_property_key(self):
        """Test that FromColumn.DataType also reads a flattened property."""
        rel = _obj(type="Relationship", FromColumnDataType="Int64", ToColumnDataType="String")
        assert evaluate("FromColumn.DataType != ToColumn.DataType", rel) is True


class TestCollections:
    """Tests for collection counts and relationship predicates."""

    def test_column_count(self, objects, context):
        """Test Columns.Count() on tables."""
        assert evaluate("Columns.Count() > 2", find(objects, "'Sales'"), context) is True
        assert evaluate("Columns.Count = 2", find(objects, "'Customer'"), context) is True

    def test_partition_count(self):
        """Test Partitions.Count with and without a count property."""
        assert evaluate("Partitions.Count > 1", _obj()) is False
        assert evaluate("Partitions.Count > 1", _obj(PartitionCount=3)) is True

    def test_used_in_relationships_count(self, objects, context):
        """Test relationship counts for tables and columns."""
        assert evaluate("UsedInRelationships.Count() = 2", find(objects, "'Customer'"), context) is True
        assert evaluate("UsedInRelationships.Count() == 1", find(objects, "'Customer'[CustomerKey]"), context) is True
        assert evaluate("UsedInRelationships.Count() == 0", find(objects, "'Sales'[Amount]"), context) is True

    def test_any_with_current(self, objects, context):
        """Test a predicate over relationships that refers back to the object."""
        expr = "UsedInRelationships.Any(current.Name == FromTable.Name) and UsedInRelationships.Any(current.Name == ToTable.Name)"
        assert evaluate(expr, find(objects, "'Customer'"), context) is True
        assert evaluate(expr, find(objects, "'Sales'"), context) is False
        assert evaluate(expr, find(objects, "'Geography'"), context) is False

    def test_foreign_key_predicate(self, objects, context):
        """Test a predicate on a column's relationships."""
        expr = 'UsedInRelationships.Any(FromTable.Name == current.Name and FromCardinality == "Many") and IsHidden == false'
        assert evaluate(expr, find(objects, "'Sales'[CustomerKey]"), context) is True
        assert evaluate(expr, find(objects, "'Geography'[GeographyKey]"), context) is False
        assert evaluate(expr, find(objects, "'Customer'[GeographyKey]"), context) is False

    def test_current_outside_predicate(self):
        """Test that current outside a relationship predicate is false."""
        assert evaluate('current.Name == "Sales"', _obj()) is False


class TestTotality:
    """Tests that evaluation never raises."""

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "(((",
            "a + b",
            'Name = "open',
            "Columns.Any(c => c.IsHidden)",
            'Model.AllMeasures.Any(it.Expression.Contains("x"))',
            "Name.ToCharArray().Any(char.IsControl(it))",
            "Unknown(1, 2)",
            "RegEx.IsMatch(Expression, 5)",
            'RegEx.IsMatch(Expression, "[unclosed")',
            "a < b < c",
        ],
    )
    def test_unsupported_text_is_false(self, expression, objects, context):
        """Test that unsupported or malformed text evaluates to False."""
        for obj in objects:
            assert evaluate(expression, obj, context) is False

    @pytest.mark.parametrize("expression", [None, 42, ["IsHidden"]])
    def test_non_string_expression_is_false(self, expression):
        """Test that a non-string expression evaluates to False."""
        assert evaluate(expression, _obj()) is False

    def test_missing_object_is_false(self):
        """Test that a missing object evaluates to False."""
        assert evaluate("IsHidden", None) is False

    def test_unsupported_atom_under_not(self):
        """Test that negating an unsupported atom negates False."""
        assert evaluate("not Unknown(1)", _obj()) is True

    def test_idempotent(self, objects, context):
        """Test that repeated evaluation gives the same answer."""
        expr = "UsedInRelationships.Any(current.Name == FromTable.Name)"
        for obj in objects:
            first = evaluate(expr, obj, context)
            assert evaluate(expr, obj, context) == first
            assert evaluate(expr, obj, context) == first


class TestOperandRecovery:
    """Tests that one unreadable operand does not sink the whole expression."""

    def test_or_with_unreadable_operand(self):
        """Test that a true operand still wins an or."""
        expr = 'IsHidden or Name + "x" == "Cx"'
        assert evaluate(expr, _obj(IsHidden=True)) is True
        assert evaluate(expr, _obj(IsHidden=False)) is False

    def test_unreadable_operand_first(self):
        """Test an unreadable operand on the left of an or."""
        assert evaluate("a + b or IsHidden", _obj(IsHidden=True)) is True

    def test_and_with_unreadable_operand(self):
        """Test that an unreadable operand makes an and false."""
        assert evaluate('IsHidden and Name + "x" == "Cx"', _obj(IsHidden=True)) is False

    def test_not_unreadable_operand(self):
        """Test that negating an unreadable operand matches negating an unsupported atom."""
        obj = _obj(IsHidden=True)
        assert evaluate('not (Name + "x" == "Cx")', obj) is True
        assert evaluate('not (Name + "x" == "Cx")', obj) == evaluate("not Unknown(1)", obj)

    def test_unbalanced_top_level_is_false(self):
        """Test that a stray closing parenthesis still makes the whole expression false."""
        assert evaluate("IsHidden)", _obj(IsHidden=True)) is False


class TestCompare:
    """Tests for the comparison helper."""

    def test_aliases(self):
        """Test that == and <> behave like = and !=."""
        assert compare("==", "a", "a") is True
        assert compare("<>", "a", "b") is True

    def test_nulls(self):
        """Test comparisons involving null."""
        assert compare("=", None, None) is True
        assert compare("!=", None, None) is False
        assert compare("!=", "x", None) is True

    def test_not_a_number(self):
        """Test that a non-numeric left side never orders against a number."""
        assert compare(">", "abc", 1) is False
        assert compare("<", "abc", 1) is False
