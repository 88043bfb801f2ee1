#!/usr/bin/env python3
"""Translated map: the mapping forest handed to the LML emitter."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

LOOP_SENTINEL = "$for"


@dataclass
class MappingNode:
    """One node of the output mapping tree.

    A node with children or attributes and no source expression is a pure
    structural parent. A node whose expression, attribute values and
    descendants are all empty produces no output.
    """
    target_path: str
    source_expression: str = ""
    is_loop: bool = False
    loop_expression: Optional[str] = None
    is_conditional: bool = False
    conditional_expression: Optional[str] = None
    is_attribute: bool = False
    attributes: dict[str, str] = field(default_factory=dict)
    children: list["MappingNode"] = field(default_factory=list)

    @property
    def is_loop_frame(self) -> bool:
        return self.target_path == LOOP_SENTINEL

    @property
    def has_output(self) -> bool:
        """Whether rendering this node writes any line at all. Loop frames always do."""
        if self.is_loop_frame:
            return True
        if self.is_attribute:
            return bool(self.source_expression)
        return bool(
            self.source_expression
            or any(self.attributes.values())
            or any(child.has_output for child in self.children)
        )


@dataclass
class TranslatedMap:
    version: str = "1"
    input_format: str = "XML"
    output_format: str = "XML"
    source_schema: Optional[str] = None
    target_schema: Optional[str] = None
    map_path: Optional[Path] = None
    source_schema_path: Optional[Path] = None
    target_schema_path: Optional[Path] = None
    source_namespaces: dict[str, str] = field(default_factory=dict)
    target_namespaces: dict[str, str] = field(default_factory=dict)
    mappings: list[MappingNode] = field(default_factory=list)
    strategy: str = "tree"
