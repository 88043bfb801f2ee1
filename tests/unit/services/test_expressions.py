#!/usr/bin/env python3

import pytest

from btm_migrator.models.map_model import TransformNode
from btm_migrator.services.domain.lml.expressions import build_expression, condition_expression
from tests.utils.factories import TransformNodeFactory


def _expr(kind, params, feeds_target_field=False):
    return build_expression(TransformNodeFactory(kind=kind), params, feeds_target_field)


class TestFunctoidExpressions:
    """Test suite for the functoid expression table."""

    @pytest.mark.parametrize("kind,params,expected", [
        ("StringUpperCase", ["/ns0:A"], "upper-case(/ns0:A)"),
        ("StringConcatenate", ["a", '" "', "b"], 'concat(a, " ", b)'),
        ("MathDivide", ["a", "b"], "divide(a, b)"),
        ("MathAdd", ["a", "b", "c"], "add(a, b, c)"),
        ("StringLeft", ["s", "3"], "substring(s, 1, 3)"),
        ("StringRight", ["s", "2"], "substring(s, string-length(s) - 2 + 1)"),
        ("StringSubstring", ["s", "2"], "substring(s, 2)"),
        ("LogicalNe", ["a", "b"], "not(is-equal(a, b))"),
        ("ValueMapping", ["cond", "value"], "if-then-else(cond, value, null)"),
        ("DateFormatDate", ["d"], "format-date(d, '[Y0001]-[M01]-[D01]')"),
        ("CumulativeCount", ["/ns0:A/ns0:Item"], "count(/ns0:A/ns0:Item)"),
        ("RecordCount", ["/ns0:A/ns0:Item"], "count(/ns0:A/ns0:Item)"),
        ("Iteration", [], "position()"),
        ("DateCurrentDate", ["ignored"], "current-date()"),
        ("MassCopy", ["/ns0:A"], "$copy(/ns0:A)"),
    ])
    def test_table_entries(self, kind, params, expected):
        assert _expr(kind, params) == expected

    @pytest.mark.parametrize("kind,params,expected", [
        ("MathDivide", ["a"], "/* MathDivide requires 2 params */"),
        ("StringUpperCase", [], "/* StringUpperCase requires 1 param */"),
        ("StringSubstring", ["s"], "/* StringSubstring requires 2-3 params */"),
        ("StringReplace", ["s", "a"], "/* StringReplace requires 3 params */"),
        ("DateFormatDateTime", [], "/* DateFormat requires 1-2 params */"),
    ])
    def test_arity_placeholders(self, kind, params, expected):
        assert _expr(kind, params) == expected

    def test_comparison_feeding_field_passes_value_through(self):
        assert _expr("LogicalGt", ["a", "b"], feeds_target_field=True) == \
            "if-then-else(greater-than(a, b), a, null)"

    def test_comparison_feeding_functoid_is_bare(self):
        assert _expr("LogicalEq", ["a", '"X"']) == 'is-equal(a, "X")'

    def test_comparison_missing_operand(self):
        assert _expr("LogicalLt", ["a"], feeds_target_field=True) == "/* less-than requires 2 params */"

    def test_manual_review_and_unknown(self):
        assert _expr("DBLookup", ["a"]) == "/* DBLookup - requires manual review */"
        assert _expr("Unknown", []) == "/* Unknown functoid: Unknown */"


class TestScriptingExpressions:
    """Test suite for inline script translation."""

    def _script(self, body=None, function=None, class_name=None):
        return TransformNode(id="1", kind="Scripting", script_body=body,
                             script_function=function, script_class=class_name)

    def test_regex_is_match(self):
        node = self._script('return Regex.IsMatch(input, "^[0-9]+$");')

        assert build_expression(node, ["/ns0:Code"]) == \
            "matches(/ns0:Code, '^[0-9]+$') /* Extracted from Regex.IsMatch */"

    def test_string_replace(self):
        node = self._script('return s.Replace("-", "");')

        assert build_expression(node, ["x"]) == "replace(x, '-', '') /* Extracted from String.Replace */"

    def test_unrecognized_code_is_kept_in_comment(self):
        node = self._script('public string F(string a)\n{\n    return "a" + a; /* x */\n}')

        expression = build_expression(node, ["p"])

        assert expression.startswith("custom-function(p) /* Original code: public string F")
        assert "\n" not in expression
        assert "'a'" in expression
        assert expression.count("*/") == 1

    def test_external_assembly_call(self):
        node = self._script(function="Format", class_name="Contoso.Helpers")

        assert build_expression(node, ["a", "b"]) == "Contoso.Helpers.Format(a, b)"

    def test_empty_script(self):
        assert build_expression(self._script(), []) == "/* Scripting functoid - manual translation required */"


class TestConditionExpression:
    """Test suite for bare logical conditions."""

    def test_comparison_is_bare(self):
        node = TransformNodeFactory(kind="LogicalGt")

        assert condition_expression(node, ["a", "0"]) == "greater-than(a, 0)"

    def test_existence(self):
        node = TransformNodeFactory(kind="LogicalExistence")

        assert condition_expression(node, ["/ns0:A"]) == "exists(/ns0:A)"

    def test_incomplete_condition_is_none(self):
        assert condition_expression(TransformNodeFactory(kind="LogicalGt"), ["a"]) is None
        assert condition_expression(TransformNodeFactory(kind="LogicalNot"), []) is None
