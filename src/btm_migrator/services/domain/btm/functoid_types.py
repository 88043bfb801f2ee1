#!/usr/bin/env python3
"""Functoid type codes (Functoid-FID) and the semantic kinds they map to.

Codes follow the BizTalk base functoid ids. The table is read-only and
shared by every conversion.
"""

from typing import Optional

UNKNOWN_KIND = "Unknown"

FUNCTOID_KINDS: dict[str, str] = {
    # String (101-110)
    "101": "StringFind",
    "102": "StringLeft",
    "103": "StringLowerCase",
    "104": "StringRight",
    "105": "StringSize",
    "106": "StringSubstring",
    "107": "StringConcatenate",
    "108": "StringTrimLeft",
    "109": "StringTrimRight",
    "110": "StringUpperCase",
    # Mathematical (111-121)
    "111": "MathAbs",
    "112": "MathInt",
    "113": "MathMax",
    "114": "MathMin",
    "115": "MathMod",
    "116": "MathRound",
    "117": "MathSqrt",
    "118": "MathAdd",
    "119": "MathSubtract",
    "120": "MathMultiply",
    "121": "MathDivide",
    # Date/Time (122-125)
    "122": "DateAddDays",
    "123": "DateCurrentDate",
    "124": "DateCurrentTime",
    "125": "DateCurrentDateTime",
    # Conversion (126-129)
    "126": "ConvertAsc",
    "127": "ConvertChr",
    "128": "ConvertHex",
    "129": "ConvertOct",
    # Scientific (130-139)
    "130": "SciArcTan",
    "131": "SciCos",
    "132": "SciSin",
    "133": "SciTan",
    "134": "SciExp",
    "135": "SciLog",
    "136": "SciExp10",
    "137": "SciLog10",
    "138": "SciPow",
    "139": "SciLogn",
    "140": "StringPadLeft",
    # Scripting
    "260": "Scripting",
    # Logical (311-321)
    "311": "LogicalGt",
    "312": "LogicalGte",
    "313": "LogicalLt",
    "314": "LogicalLte",
    "315": "LogicalEq",
    "316": "LogicalNe",
    "317": "LogicalIsString",
    "318": "LogicalIsDate",
    "319": "LogicalIsNumeric",
    "320": "LogicalOr",
    "321": "LogicalAnd",
    # Index / count
    "322": "Count",
    "323": "Index",
    # Cumulative (324-329)
    "324": "CumulativeSum",
    "325": "CumulativeAvg",
    "326": "CumulativeMin",
    "327": "CumulativeMax",
    "328": "CumulativeConcat",
    "329": "CumulativeCount",
    # Value mapping
    "374": "ValueMappingFlattening",
    "375": "ValueMapping",
    "376": "NilValue",
    "377": "MassFlattening",
    # Looping / iteration
    "424": "Looping",
    "425": "TableLoopingExtract",
    "474": "Iteration",
    "475": "RecordCount",
    # Database
    "524": "DBLookup",
    "574": "DBValueExtract",
    "575": "DBErrorExtract",
    # Advanced
    "701": "LogicalExistence",
    "702": "XPath",
    "703": "TableLooping",
    "704": "TableExtractor",
    "705": "LogicalNot",
    "706": "IsNil",
    "707": "Assert",
    # Mass operations
    "800": "KeyMatch",
    "801": "ExistenceLooping",
    "802": "MassCopy",
}

# Kinds whose output drives a loop frame instead of a value
LOOP_FRAME_KINDS = frozenset({"Looping", "MassCopy", "ExistenceLooping"})

# Kinds whose output is a boolean condition
LOGICAL_KINDS = frozenset({
    "LogicalGt", "LogicalGte", "LogicalLt", "LogicalLte", "LogicalEq", "LogicalNe",
    "LogicalIsString", "LogicalIsDate", "LogicalIsNumeric", "LogicalOr", "LogicalAnd",
    "LogicalExistence", "LogicalNot", "IsNil",
})


def determine_functoid_kind(type_code: Optional[str]) -> str:
    """Resolve a Functoid-FID code to its kind, `Unknown` when not listed."""
    if not type_code:
        return UNKNOWN_KIND
    return FUNCTOID_KINDS.get(type_code.strip(), UNKNOWN_KIND)
