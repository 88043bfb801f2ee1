#!/usr/bin/env python3
"""
Functoid kind -> LML expression table.

Each functoid becomes a function call over its already-resolved parameter
expressions. A functoid given fewer operands than it needs produces a
comment placeholder naming the expected arity, never an exception.
"""

import re
from typing import Callable, Optional

from ....models.map_model import TransformNode

DEFAULT_DATETIME_PICTURE = "'[Y0001]-[M01]-[D01]T[H01]:[m01]:[s01]'"
DEFAULT_DATE_PICTURE = "'[Y0001]-[M01]-[D01]'"
DEFAULT_TIME_PICTURE = "'[H01]:[m01]:[s01]'"

# kind -> function, one operand
UNARY_FUNCTIONS = {
    "StringLowerCase": "lower-case",
    "StringSize": "string-length",
    "StringTrimLeft": "trim-left",
    "StringTrimRight": "trim-right",
    "StringUpperCase": "upper-case",
    "StringNormalize": "normalize-space",
    "StringNormalizeSpace": "normalize-space",
    "MathAbs": "abs",
    "MathInt": "floor",
    "MathRound": "round",
    "MathSqrt": "sqrt",
    "MathCeiling": "ceiling",
    "Ceiling": "ceiling",
    "ConvertAsc": "string-to-codepoints",
    "ConvertChr": "codepoints-to-string",
    "ConvertHex": "to-hex",
    "ConvertOct": "to-octal",
    "SciArcTan": "atan",
    "SciCos": "cos",
    "SciSin": "sin",
    "SciTan": "tan",
    "SciExp": "exp",
    "SciLog": "log",
    "SciLog10": "log10",
    "LogicalIsString": "is-string",
    "LogicalIsDate": "is-date",
    "LogicalIsNumeric": "is-number",
    "LogicalExistence": "exists",
    "LogicalNot": "not",
    "IsNil": "is-null",
    "Count": "count",
    "CumulativeSum": "sum",
    "CumulativeAvg": "avg",
    "CumulativeMin": "min",
    "CumulativeMax": "max",
    "Abs": "abs",
    "UpperCase": "upper-case",
    "LowerCase": "lower-case",
}

# kind -> function, first two operands
BINARY_FUNCTIONS = {
    "StringFind": "contains",
    "StringStartsWith": "starts-with",
    "StringEndsWith": "ends-with",
    "StringTokenize": "tokenize",
    "MathMod": "modulo",
    "MathSubtract": "subtract",
    "MathDivide": "divide",
    "DateAddDays": "add-days",
    "SciPow": "pow",
    "SciLogn": "logn",
    "Subtract": "subtract",
    "Divide": "divide",
}

# kind -> function, all operands
VARIADIC_FUNCTIONS = {
    "StringConcatenate": "concat",
    "MathMax": "max",
    "MathMin": "min",
    "MathAdd": "add",
    "MathMultiply": "multiply",
    "LogicalOr": "or",
    "LogicalAnd": "and",
    "Add": "add",
    "Multiply": "multiply",
    "Concatenate": "concat",
}

# kind -> expression without operands
NILADIC_EXPRESSIONS = {
    "DateCurrentDate": "current-date()",
    "DateCurrentTime": "current-time()",
    "DateCurrentDateTime": "current-dateTime()",
    "DateTime": "current-dateTime()",
    "Date": "current-date()",
    "Time": "current-time()",
    "NilValue": "null /* Nil Value */",
    "Iteration": "position()",
    "ExistenceLooping": "$loop",
}

COMPARISON_FUNCTIONS = {
    "LogicalGt": "greater-than",
    "LogicalGte": "greater-than-or-equal",
    "LogicalLt": "less-than",
    "LogicalLte": "less-than-or-equal",
    "LogicalEq": "is-equal",
}

MANUAL_REVIEW_KINDS = frozenset({
    "DBLookup", "DBValueExtract", "DBErrorExtract", "TableLooping", "TableLoopingExtract", "TableExtractor",
    "KeyMatch",
})

# Placeholder names that differ from the kind
_PLACEHOLDER_NAMES = {
    "StringMatches": "Matches",
    "RegexMatches": "Matches",
    "StringTokenize": "Tokenize",
    "StringNormalizeSpace": "StringNormalize",
    "MathCeiling": "MathCeiling",
    "Ceiling": "MathCeiling",
    "DateFormatDateTime": "DateFormat",
}

_REGEX_IS_MATCH = re.compile(r'Regex\.IsMatch\([^,]+,\s*"([^"]+)"\)')
_REGEX_REPLACE = re.compile(r'Regex\.Replace\([^,]+,\s*"([^"]+)",\s*"([^"]*)"\)')
_STRING_REPLACE = re.compile(r'\.Replace\("([^"]+)",\s*"([^"]*)"\)')
_STARTS_WITH = re.compile(r'\.StartsWith\("([^"]+)"\)')
_ENDS_WITH = re.compile(r'\.EndsWith\("([^"]+)"\)')


def requires(kind: str, count: str) -> str:
    """Arity placeholder, e.g. ``/* MathDivide requires 2 params */``."""
    name = _PLACEHOLDER_NAMES.get(kind, kind)
    noun = "param" if count == "1" else "params"
    return f"/* {name} requires {count} {noun} */"


def call(function: str, args: list[str]) -> str:
    return f"{function}({', '.join(args)})"


def comparison_expression(kind: str, params: list[str], feeds_target_field: bool) -> str:
    """Comparison functoid, read as if/else when wired straight to a field.

    A comparison whose output lands on a schema field means "pass the first
    operand through when the comparison holds".
    """
    function = COMPARISON_FUNCTIONS[kind]
    if len(params) < 2:
        return f"/* {function} requires 2 params */"
    comparison = call(function, params[:2])
    if feeds_target_field:
        return f"if-then-else({comparison}, {params[0]}, null)"
    return comparison


def scripting_expression(node: TransformNode, params: list[str]) -> str:
    """Best-effort translation of a Scripting functoid's inline code."""
    code = node.script_body
    if code:
        first = params[0] if params else None

        match = _REGEX_IS_MATCH.search(code)
        if match and first:
            return f"matches({first}, '{match.group(1)}') /* Extracted from Regex.IsMatch */"

        match = _REGEX_REPLACE.search(code)
        if match and first:
            return f"replace({first}, '{match.group(1)}', '{match.group(2)}') /* Extracted from Regex.Replace */"

        match = _STRING_REPLACE.search(code)
        if match and first:
            return f"replace({first}, '{match.group(1)}', '{match.group(2)}') /* Extracted from String.Replace */"

        match = _STARTS_WITH.search(code)
        if match and first:
            return f"starts-with({first}, '{match.group(1)}') /* Extracted from StartsWith */"

        match = _ENDS_WITH.search(code)
        if match and first:
            return f"ends-with({first}, '{match.group(1)}') /* Extracted from EndsWith */"

        flattened = " ".join(code.replace("\r", " ").replace("\n", " ").split()).replace('"', "'")
        flattened = flattened.replace("*/", "* /")
        return f"{call('custom-function', params)} /* Original code: {flattened} */"

    if node.script_function:
        qualified = f"{node.script_class}.{node.script_function}" if node.script_class else node.script_function
        return call(qualified, params)

    return "/* Scripting functoid - manual translation required */"


def _substring(kind: str, p: list[str]) -> str:
    if len(p) >= 3:
        return call("substring", p[:3])
    if len(p) == 2:
        return call("substring", p)
    return requires(kind, "2-3")


def _formatted(function: str, picture: str) -> Callable[[str, list[str]], str]:
    def build(kind: str, p: list[str]) -> str:
        if len(p) >= 2:
            return call(function, p[:2])
        if len(p) == 1:
            return call(function, [p[0], picture])
        return requires(kind, "1-2")
    return build


def _value_mapping(kind: str, p: list[str]) -> str:
    if len(p) >= 3:
        return call("if-then-else", p[:3])
    if len(p) == 2:
        return f"if-then-else({p[0]}, {p[1]}, null)"
    return requires(kind, "2-3")


def _fixed(count: int, render: Callable[[list[str]], str]) -> Callable[[str, list[str]], str]:
    def build(kind: str, p: list[str]) -> str:
        return render(p) if len(p) >= count else requires(kind, str(count))
    return build


SPECIAL_BUILDERS: dict[str, Callable[[str, list[str]], str]] = {
    "StringLeft": _fixed(2, lambda p: f"substring({p[0]}, 1, {p[1]})"),
    "StringRight": _fixed(2, lambda p: f"substring({p[0]}, string-length({p[0]}) - {p[1]} + 1)"),
    "StringSubstring": _substring,
    "StringReplace": _fixed(3, lambda p: call("replace", p[:3])),
    "StringMatches": _fixed(2, lambda p: call("matches", p[:2])),
    "RegexMatches": _fixed(2, lambda p: call("matches", p[:2])),
    "DateFormat": _formatted("format-dateTime", DEFAULT_DATETIME_PICTURE),
    "DateFormatDateTime": _formatted("format-dateTime", DEFAULT_DATETIME_PICTURE),
    "DateFormatDate": _formatted("format-date", DEFAULT_DATE_PICTURE),
    "DateFormatTime": _formatted("format-time", DEFAULT_TIME_PICTURE),
    "SciExp10": _fixed(1, lambda p: f"pow(10, {p[0]})"),
    "LogicalNe": _fixed(2, lambda p: f"not(is-equal({p[0]}, {p[1]}))"),
    "Index": lambda kind, p: call("position-at", p[:2]) if len(p) >= 2 else "position()",
    "CumulativeConcat": _fixed(1, lambda p: f"string-join({p[0]}, '')"),
    "CumulativeCount": _fixed(1, lambda p: call("count", p[:1])),
    "RecordCount": _fixed(1, lambda p: call("count", p[:1])),
    "ValueMappingFlattening": _fixed(2, lambda p: f"if-then-else({p[0]}, {p[1]}, null)"),
    "ValueMapping": _value_mapping,
    "XPath": _fixed(1, lambda p: p[0]),
    "Assert": _fixed(3, lambda p: call("if-then-else", p[:3])),
    "Looping": lambda kind, p: f"$for({p[0]})" if p else "$loop",
    "MassCopy": lambda kind, p: f"$copy({p[0]})" if p else "$copy()",
}


def build_expression(node: TransformNode, params: list[str], feeds_target_field: bool = False) -> str:
    """Translate one functoid given its resolved parameter expressions.

    Args:
        node: Functoid being translated
        params: Parameter expressions in operand order
        feeds_target_field: True when an output link ends on a schema field

    Returns:
        LML expression, or a comment placeholder
    """
    kind = node.kind

    if kind in UNARY_FUNCTIONS:
        return call(UNARY_FUNCTIONS[kind], params[:1]) if params else requires(kind, "1")
    if kind in BINARY_FUNCTIONS:
        return call(BINARY_FUNCTIONS[kind], params[:2]) if len(params) >= 2 else requires(kind, "2")
    if kind in VARIADIC_FUNCTIONS:
        return call(VARIADIC_FUNCTIONS[kind], params)
    if kind in NILADIC_EXPRESSIONS:
        return NILADIC_EXPRESSIONS[kind]
    if kind in COMPARISON_FUNCTIONS:
        return comparison_expression(kind, params, feeds_target_field)
    if kind in SPECIAL_BUILDERS:
        return SPECIAL_BUILDERS[kind](kind, params)
    if kind in MANUAL_REVIEW_KINDS:
        return f"/* {kind} - requires manual review */"
    if kind == "Scripting":
        return scripting_expression(node, params)

    return f"/* Unknown functoid: {kind} */"


def condition_expression(node: TransformNode, params: list[str]) -> Optional[str]:
    """Bare boolean expression of a logical functoid, for ``$if`` blocks."""
    if node.kind in COMPARISON_FUNCTIONS:
        if len(params) < 2:
            return None
        return comparison_expression(node.kind, params, feeds_target_field=False)
    expression = build_expression(node, params)
    return None if expression.startswith("/*") else expression
