#!/usr/bin/env python3
"""
LML text emitter.

Renders a TranslatedMap as the indented, YAML-like Logic Apps Mapping
Language. Rendering is purely structural: every decision about content
was made by the translator.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from ....models.lml_model import MappingNode, TranslatedMap
from ..btm.namespaces import is_utility_namespace, ns_slot_index

logger = logging.getLogger(__name__)

INDENT = "  "

_QUALIFIED_NAME = re.compile(r"^[A-Za-z_]\w*:[A-Za-z_]\w*$")
_RESERVED_LEADING = ("@", "*", "&", "!", "|", ">", "%", "#", "`")
_RESERVED_CHARACTERS = (":", "'", '"', "{", "}", "[", "]")


def quote_if_needed(name: str) -> str:
    """Quote a field name that would not survive as a plain key.

    Example:
        >>> quote_if_needed("ns0:Order")
        'ns0:Order'
        >>> quote_if_needed("Item[1]")
        "'Item[1]'"
    """
    if not name:
        return '""'
    if name.startswith("$@") or name == "$value":
        return name
    if _QUALIFIED_NAME.match(name):
        return name
    if name.startswith(_RESERVED_LEADING) or any(c in name for c in _RESERVED_CHARACTERS):
        return "'" + name.replace("'", "''") + "'"
    return name


def governing_prefix(target_namespaces: dict[str, str], source_namespaces: dict[str, str]) -> Optional[str]:
    """Prefix given to top-level target elements.

    The first non-utility target namespace that the source does not share,
    else the first non-utility ``nsN`` namespace, else none.
    """
    source_uris = set(source_namespaces.values())
    ordered = sorted(target_namespaces, key=lambda p: (ns_slot_index(p) is None, ns_slot_index(p) or 0, p))
    business = [p for p in ordered if not is_utility_namespace(target_namespaces[p]) and p != "xs"]

    for prefix in business:
        if target_namespaces[prefix] not in source_uris:
            return prefix
    return next((p for p in business if ns_slot_index(p) is not None), None)


def resolve_schema_reference(schema_name: Optional[str], schema_path: Optional[Path]) -> str:
    """Header value for a schema: the supplied file's name, else the schema name as .xsd."""
    if schema_path is not None and Path(schema_path).is_file():
        return Path(schema_path).name
    if not schema_name:
        return ""
    return schema_name if schema_name.lower().endswith(".xsd") else f"{schema_name}.xsd"


class LmlEmitter:
    """Writes LML text. Stateless apart from the output being built."""

    def emit(self, translated_map: TranslatedMap) -> str:
        lines: list[str] = []
        self._header(translated_map, lines)
        self._namespaces("$sourceNamespaces", translated_map.source_namespaces, lines)
        self._namespaces("$targetNamespaces", translated_map.target_namespaces, lines)

        root_prefix = governing_prefix(translated_map.target_namespaces, translated_map.source_namespaces)
        for node in translated_map.mappings:
            self._node(node, 0, lines, root_prefix, inside_element=False)

        logger.debug(f"Emitted {len(lines)} lines")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _line(lines: list[str], depth: int, content: str) -> None:
        lines.append((INDENT * depth + content).rstrip())

    def _header(self, translated_map: TranslatedMap, lines: list[str]) -> None:
        self._line(lines, 0, f"$version: {translated_map.version}")
        self._line(lines, 0, f"$input: {translated_map.input_format}")
        self._line(lines, 0, f"$output: {translated_map.output_format}")
        source = resolve_schema_reference(translated_map.source_schema, translated_map.source_schema_path)
        target = resolve_schema_reference(translated_map.target_schema, translated_map.target_schema_path)
        self._line(lines, 0, f"$sourceSchema: {source}")
        self._line(lines, 0, f"$targetSchema: {target}")

    def _namespaces(self, heading: str, namespaces: dict[str, str], lines: list[str]) -> None:
        if not namespaces:
            return
        self._line(lines, 0, f"{heading}:")
        for prefix in sorted(namespaces):
            self._line(lines, 1, f"{prefix}: {namespaces[prefix]}")

    def _field_name(self, node: MappingNode, root_prefix: Optional[str], inside_element: bool) -> str:
        name = node.target_path.rstrip("/").rsplit("/", 1)[-1]
        local = name.split(":", 1)[-1]
        if inside_element:
            return local
        return f"{root_prefix}:{local}" if root_prefix else name

    def _node(self, node: MappingNode, depth: int, lines: list[str], root_prefix: Optional[str],
              inside_element: bool) -> None:
        if node.is_loop_frame:
            self._line(lines, depth, f"$for({node.loop_expression}):")
            for child in node.children:
                self._node(child, depth + 1, lines, root_prefix, inside_element)
            return

        if not node.has_output:
            return

        if node.is_conditional:
            self._line(lines, depth, f"$if({node.conditional_expression}):")
            depth += 1

        field_name = self._field_name(node, root_prefix, inside_element)
        if node.is_attribute:
            self._line(lines, depth, f"$@{field_name.lstrip('@')}: {self._attribute_value(node.source_expression)}")
            return

        name = quote_if_needed(field_name)
        children = [child for child in node.children if child.has_output]
        if not children and not any(node.attributes.values()):
            self._line(lines, depth, f"{name}: {node.source_expression}")
            return

        self._line(lines, depth, f"{name}:")
        self._attributes(node, depth + 1, lines)
        if node.source_expression:
            self._line(lines, depth + 1, f"$value: {node.source_expression}")
        for child in children:
            self._node(child, depth + 1, lines, root_prefix, True)

    def _attributes(self, node: MappingNode, depth: int, lines: list[str]) -> None:
        for key in sorted(node.attributes):
            value = node.attributes[key]
            if not value:
                continue
            self._line(lines, depth, f"$@{key.lstrip('@')}: {self._attribute_value(value)}")

    @staticmethod
    def _attribute_value(value: str) -> str:
        return f"'{value}'" if value.startswith("@") else value
