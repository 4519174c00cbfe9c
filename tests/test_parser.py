"""Unit tests for the rule expression parser."""

import pytest

from bpavalidator.expr.ast import BoolOp, Call, Comparison, Literal, Name, Not, Unsupported
from bpavalidator.expr.parser import (
    ExpressionSyntaxError,
    normalize_expression,
    parse_expression,
    tokenize,
)


class TestNormalizeExpression:
    """Tests for whitespace and operator normalization."""

    def test_collapses_whitespace(self):
        """Test that line breaks and tabs collapse to single spaces."""
        assert normalize_expression("IsHidden\r\n  and\tIsKey ") == "IsHidden and IsKey"

    def test_rewrites_symbolic_boolean_operators(self):
        """Test that && and || become keywords."""
        assert normalize_expression("IsHidden&&IsKey||true") == "IsHidden and IsKey or true"

    def test_string_literals_are_untouched(self):
        """Test that whitespace and operators inside quotes survive."""
        assert normalize_expression('Name.StartsWith("a  &&  b")') == 'Name.StartsWith("a  &&  b")'


class TestTokenize:
    """Tests for the tokenizer."""

    def test_negative_number_after_operator(self):
        """Test that a minus after a comparison starts a number."""
        tokens = tokenize("Name.IndexOf(char(9)) > -1")
        assert tokens[-2].kind == "number"
        assert tokens[-2].value == -1

    def test_keywords_are_case_insensitive(self):
        """Test that AND / Or / NOT are boolean keywords."""
        kinds = [t.kind for t in tokenize("a AND b Or NOT c")]
        assert kinds == ["ident", "and", "ident", "or", "not", "ident", "eof"]

    def test_bang_equals_is_an_operator(self):
        """Test that != is not read as a negation."""
        tokens = tokenize("a != b")
        assert tokens[1].kind == "op"
        assert tokens[1].value == "!="

    def test_string_escapes(self):
        """Test that only quote and backslash escapes are unescaped."""
        tokens = tokenize(r'"a\"b" "\s*\("')
        assert tokens[0].value == 'a"b'
        assert tokens[1].value == r"\s*\("

    def test_unterminated_string(self):
        """Test that an open string becomes one error token."""
        tokens = tokenize('Name = "abc')
        assert [t.kind for t in tokens] == ["ident", "op", "error", "eof"]
        assert tokens[2].value == '"abc'

    def test_unknown_character(self):
        """Test that characters outside the grammar become error tokens."""
        kinds = [t.kind for t in tokenize("a + b")]
        assert kinds == ["ident", "error", "ident", "eof"]


class TestParseExpression:
    """Tests for the expression tree."""

    def test_precedence(self):
        """Test that and binds tighter than or."""
        tree = parse_expression("a or b and c")
        assert tree == BoolOp("or", (Name(("a",)), BoolOp("and", (Name(("b",)), Name(("c",))))))

    def test_parentheses(self):
        """Test that parentheses override precedence."""
        tree = parse_expression("(a or b) and c")
        assert tree == BoolOp("and", (BoolOp("or", (Name(("a",)), Name(("b",)))), Name(("c",))))

    def test_not_binds_to_atom(self):
        """Test that not applies to the next atom only."""
        tree = parse_expression("not a and b")
        assert tree == BoolOp("and", (Not(Name(("a",))), Name(("b",))))
        assert parse_expression("!a") == Not(Name(("a",)))

    def test_comparison_and_literals(self):
        """Test comparison nodes and literal keywords."""
        assert parse_expression("IsHidden == false") == Comparison("==", Name(("IsHidden",)), Literal(False))
        assert parse_expression("DataCategory = null") == Comparison("=", Name(("DataCategory",)), Literal(None))

    def test_dotted_name_and_method_chain(self):
        """Test property paths and chained method calls."""
        assert parse_expression("Table.IsHidden") == Name(("Table", "IsHidden"))
        tree = parse_expression("Name.Substring(0,1).ToUpper()")
        assert tree == Call(Call(Name(("Name",)), "Substring", (Literal(0), Literal(1))), "ToUpper", ())

    def test_free_function_call(self):
        """Test a call without a target."""
        assert parse_expression("char(9)") == Call(None, "char", (Literal(9),))

    def test_it_prefix(self):
        """Test that it.X reads as X."""
        assert parse_expression("it.Name") == Name(("Name",))

    def test_stray_closing_parenthesis_is_rejected(self):
        """Test that an unbalanced top level is a syntax error."""
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("a)")
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("a and )")


class TestOperandRecovery:
    """Tests for operands the grammar cannot read."""

    def test_bad_operand_after_or(self):
        """Test that the readable side of an or is kept."""
        tree = parse_expression('IsHidden or Name + "x" == "Cx"')
        assert tree == BoolOp("or", (Name(("IsHidden",)), Unsupported('Name + "x" == "Cx"')))

    def test_bad_operand_before_and(self):
        """Test that skipping stops at the next and."""
        tree = parse_expression("a + b and IsHidden")
        assert tree == BoolOp("and", (Unsupported("a + b"), Name(("IsHidden",))))

    def test_bad_operand_under_not(self):
        """Test that a parenthesised bad operand stays under the negation."""
        tree = parse_expression('not (Name + "x" == "Cx")')
        assert tree == Not(Unsupported('Name + "x" == "Cx"'))

    def test_chained_comparison(self):
        """Test that a < b < c is one unreadable operand."""
        assert parse_expression("a < b < c") == Unsupported("a < b < c")

    def test_lambda_argument(self):
        """Test that a lambda argument is unreadable but the call is kept."""
        tree = parse_expression("Columns.Any(c => c.IsHidden)")
        assert tree == Call(Name(("Columns",)), "Any", (Unsupported("c => c.IsHidden"),))

    def test_trailing_tokens(self):
        """Test that leftover input makes the operand unreadable."""
        assert parse_expression("a b") == Unsupported("a b")

    def test_empty_expression(self):
        """Test that an empty expression is one empty unreadable operand."""
        assert parse_expression("") == Unsupported("")

    def test_unbalanced_open_parentheses(self):
        """Test that unclosed groups collapse into one unreadable operand."""
        assert parse_expression("(((") == Unsupported("(((")
