#!/usr/bin/env python3
"""XPath clean-up, namespace qualification and relativization.

BizTalk stores paths as ``/*[local-name()='<Schema>']/*[local-name()='Root']/...``.
The Logic Apps runtime wants ``/ns0:Root/...``: EDI schemas qualify every
element except the leaf, other schemas qualify only the root element.
"""

import re
from typing import Optional

from ..btm.namespaces import is_edi_namespace, ns_slot_index

_ATTRIBUTE_STEP = re.compile(r"@\*\[local-name\(\)='([^']+)'(?:\s+and\s+namespace-uri\(\)='[^']*')?\]")
_ELEMENT_STEP = re.compile(r"\*\[local-name\(\)='([^']+)'(?:\s+and\s+namespace-uri\(\)='[^']*')?\]")
_SCHEMA_PLACEHOLDER = "<Schema>"

_ROOT_PREFIX_EXCLUDES = ("PropertySchema", "XMLSchema")
_SLOT_PREFIX_EXCLUDES = ("PropertySchema", "XMLSchema", "BizTalk/2003")


def strip_local_name_syntax(xpath: str) -> str:
    """Reduce BizTalk local-name() steps to plain names and drop <Schema>.

    BizTalk paths come back anchored at the root. Paths without BizTalk
    syntax are returned as they are, so relative paths stay relative.
    """
    if not xpath or ("local-name()" not in xpath and _SCHEMA_PLACEHOLDER not in xpath):
        return xpath
    xpath = _ATTRIBUTE_STEP.sub(r"@\1", xpath)
    xpath = _ELEMENT_STEP.sub(r"\1", xpath)
    xpath = xpath.replace(f"/{_SCHEMA_PLACEHOLDER}/", "/")
    xpath = xpath.replace(f"{_SCHEMA_PLACEHOLDER}/", "/")
    xpath = xpath.replace(_SCHEMA_PLACEHOLDER, "")
    if not xpath.startswith("/"):
        xpath = "/" + xpath
    return xpath


def split_path(path: str) -> list[str]:
    """Non-empty segments of a slash-separated path."""
    return [segment for segment in (path or "").split("/") if segment]


def strip_prefix(segment: str) -> str:
    if segment.startswith("@"):
        return "@" + segment[1:].split(":", 1)[-1]
    return segment.split(":", 1)[-1]


def path_key(path: str) -> tuple:
    """Prefix-insensitive identity of a path, for matching target locations."""
    return tuple(strip_prefix(segment) for segment in split_path(path))


def needs_cleanup(expression: str) -> bool:
    """Whether an expression is a path that should be qualified."""
    if not expression:
        return False
    if "local-name()" in expression or _SCHEMA_PLACEHOLDER in expression:
        return True
    if expression.startswith(('"', "'", "$", "/*")):
        return False
    return "(" not in expression and "/" in expression


def relativize_path(absolute: str, base: str) -> str:
    """Make a path relative to a loop base.

    The first remaining segment keeps its prefix, later element segments
    lose theirs. Paths outside the base are returned unchanged.

    Example:
        >>> relativize_path("/ns0:A/ns0:B/ns0:C/D", "/ns0:A/ns0:B")
        'ns0:C/D'
    """
    trimmed = absolute.lstrip("/")
    base = base.strip("/")
    if not base or not trimmed.startswith(base + "/"):
        return absolute

    parts = trimmed[len(base) + 1:].split("/")
    relative = [parts[0]]
    for part in parts[1:]:
        if ":" in part and not part.startswith("@"):
            part = part.split(":", 1)[1]
        relative.append(part)
    return "/".join(relative)


def relativize_expression(expression: Optional[str], base: str) -> Optional[str]:
    """Relativize every path under ``base`` inside an expression."""
    if not expression or not base or base.rstrip("/") not in expression:
        return expression
    if "(" not in expression:
        return relativize_path(expression, base)

    pattern = re.compile(r"(?<![\w:.-])" + re.escape(base.rstrip("/")) + r"/[^\s,()]+")
    return pattern.sub(lambda m: relativize_path(m.group(0), base), expression)


def common_parent_prefix(paths: list[str]) -> str:
    """Longest common prefix of the parents of several absolute paths."""
    parents = [split_path(path)[:-1] for path in paths]
    if not parents or any(not parent for parent in parents):
        return ""

    common = []
    for segments in zip(*parents):
        if any(segment != segments[0] for segment in segments):
            break
        common.append(segments[0])
    return "/" + "/".join(common) if common else ""


class PathQualifier:
    """Namespace-qualifies cleaned paths for one map's source side."""

    def __init__(self, source_namespaces: dict[str, str], source_schema_name: Optional[str] = None):
        self.source_namespaces = source_namespaces
        self.source_schema_name = source_schema_name
        self.edi_prefix = next(
            (prefix for prefix, uri in source_namespaces.items() if is_edi_namespace(uri)), None
        )
        self.root_prefix = None if self.edi_prefix else self._choose_root_prefix()

    def _choose_root_prefix(self) -> Optional[str]:
        base = (self.source_schema_name or "").rsplit(".xsd", 1)[0]
        if base:
            for prefix, uri in self.source_namespaces.items():
                if (base in uri and prefix.startswith("ns")
                        and not any(marker in uri for marker in _ROOT_PREFIX_EXCLUDES)):
                    return prefix

        slots = sorted(
            (p for p, uri in self.source_namespaces.items()
             if ns_slot_index(p) is not None and not any(m in uri for m in _SLOT_PREFIX_EXCLUDES)),
            key=ns_slot_index,
        )
        return slots[0] if slots else None

    def cleanup_source(self, xpath: str) -> str:
        """Clean a source path and qualify it with the source namespace prefix."""
        xpath = strip_local_name_syntax(xpath)
        if not xpath.startswith("/"):
            return xpath
        if self.edi_prefix:
            return self._qualify_edi(xpath)
        return self._qualify_root(xpath)

    def cleanup_loop(self, xpath: str) -> str:
        """Clean a path used as a loop base.

        Unlike field paths, EDI loop bases keep the prefix on their last
        segment so the fields below them can be made relative.
        """
        xpath = strip_local_name_syntax(xpath)
        if not xpath.startswith("/"):
            return xpath
        if self.edi_prefix:
            return "/".join(self.qualify_edi_segment(segment) if segment else segment
                            for segment in xpath.split("/"))
        return self._qualify_root(xpath)

    def cleanup_target(self, xpath: str) -> str:
        """Clean a target path; target paths stay unqualified."""
        return strip_local_name_syntax(xpath)

    def qualify_edi_segment(self, segment: str) -> str:
        if not self.edi_prefix or ":" in segment or segment.startswith("@") or "(" in segment:
            return segment
        return f"{self.edi_prefix}:{segment}"

    def _qualify_edi(self, xpath: str) -> str:
        segments = xpath.split("/")
        last = len(segments) - 1
        qualified = []
        for index, segment in enumerate(segments):
            if not segment or segment.startswith("@") or "(" in segment:
                qualified.append(segment)
                continue
            name = segment.split(":", 1)[-1]
            qualified.append(name if index == last else f"{self.edi_prefix}:{name}")
        return "/".join(qualified)

    def _qualify_root(self, xpath: str) -> str:
        segments = xpath.split("/")
        if not self.root_prefix or len(segments) < 2:
            return xpath
        root = segments[1]
        if root and not root.startswith("@") and "(" not in root and ":" not in root:
            segments[1] = f"{self.root_prefix}:{root}"
        return "/".join(segments)
