#!/usr/bin/env python3
"""Normalized model of a BizTalk map document.

The parser fills these structures from the .btm XML; the resolver then adds
the adjacency between transform nodes (functoids) and links.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

PARAM_CONSTANT = "constant"
PARAM_LINK = "link"


@dataclass
class Parameter:
    """Operand of a transform node."""
    kind: str                               # "constant" or "link" (lower-cased)
    value: str                              # Literal text or link id
    order: int = 0                          # Explicit Order attribute, else position
    guid: Optional[str] = None


@dataclass(eq=False)
class Edge:
    """Directed link between schema fields and/or transform nodes."""
    id: str
    from_id: str
    to_id: str
    label: Optional[str] = None
    source_directive: Optional[str] = None  # Compiler-Copy-Directive
    target_directive: Optional[str] = None  # Compiler-Directive
    from_is_node: bool = False
    to_is_node: bool = False
    from_node: Optional["TransformNode"] = field(default=None, repr=False)
    to_node: Optional["TransformNode"] = field(default=None, repr=False)


@dataclass(eq=False)
class TransformNode:
    """A functoid: typed transformation unit with ordered parameters."""
    id: str
    kind: str = "Unknown"
    type_code: Optional[str] = None         # Functoid-FID
    clsid: Optional[str] = None
    x: int = 0
    y: int = 0
    page: int = 1
    parameters: list[Parameter] = field(default_factory=list)
    script_body: Optional[str] = None
    script_language: Optional[str] = None
    script_assembly: Optional[str] = None
    script_class: Optional[str] = None
    script_function: Optional[str] = None
    input_edges: list[Edge] = field(default_factory=list, repr=False)
    output_edges: list[Edge] = field(default_factory=list, repr=False)


@dataclass(eq=False)
class SchemaTreeNode:
    """Element of a source or target schema tree."""
    name: str
    xpath: str
    node_id: Optional[str] = None           # TreeNodeID, inline trees only
    data_type: Optional[str] = None
    is_repeating: bool = False
    children: list["SchemaTreeNode"] = field(default_factory=list)
    parent: Optional["SchemaTreeNode"] = field(default=None, repr=False)

    def iter_preorder(self):
        """Yield this node and its descendants, parents first."""
        yield self
        for child in self.children:
            yield from child.iter_preorder()


@dataclass
class SchemaTree:
    """One side of the map."""
    schema_name: Optional[str] = None
    root: Optional[SchemaTreeNode] = None
    node_lookup: dict[str, SchemaTreeNode] = field(default_factory=dict)

    def build_node_lookup(self) -> None:
        self.node_lookup = {}
        if self.root is None:
            return
        for node in self.root.iter_preorder():
            if node.node_id:
                self.node_lookup[node.node_id] = node

    def iter_nodes(self):
        if self.root is not None:
            yield from self.root.iter_preorder()


@dataclass
class MapDocument:
    """Everything read from one map document and its auxiliary schemas."""
    map_path: Optional[Path] = None
    source_schema_name: Optional[str] = None
    target_schema_name: Optional[str] = None
    source_schema_type: Optional[str] = None
    target_schema_type: Optional[str] = None
    source_namespaces: dict[str, str] = field(default_factory=dict)
    target_namespaces: dict[str, str] = field(default_factory=dict)
    nodes: list[TransformNode] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    source_tree: SchemaTree = field(default_factory=SchemaTree)
    target_tree: SchemaTree = field(default_factory=SchemaTree)
    node_by_id: dict[str, TransformNode] = field(default_factory=dict, repr=False)
    edge_by_id: dict[str, Edge] = field(default_factory=dict, repr=False)
    page_count: int = 1
    loaded_schemas: list[Path] = field(default_factory=list)
