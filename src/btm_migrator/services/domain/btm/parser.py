#!/usr/bin/env python3
"""
BizTalk map (.btm) parser.

Reads the map document and any auxiliary XSD files into a MapDocument:
schema names, namespace tables, functoids with ordered parameters, links,
and the source/target schema trees.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Union
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET

from ....core.config import MigratorConfig, migrator_config
from ....models.map_model import (
    Edge,
    MapDocument,
    Parameter,
    SchemaTree,
    SchemaTreeNode,
    TransformNode,
)
from .functoid_types import determine_functoid_kind
from .namespaces import (
    add_declared_namespace,
    drop_empty_prefix,
    ensure_xs_namespace,
    preferred_prefix,
    register_namespace,
)
from .xsd import (
    build_tree_from_xsd,
    decode_xml_bytes,
    extract_schema_file_name,
    find_start_tag,
    find_xsd_for_type_name,
    local_name,
    merge_schema_namespaces,
    parse_declarations,
    resolve_reference_location,
)

logger = logging.getLogger(__name__)

SOURCE = "source"
TARGET = "target"
_TREE_TAGS = {SOURCE: "SrcTree", TARGET: "TrgTree"}

_LOCAL_NAME_STEP = re.compile(r"/\*\[local-name\(\)='([^']+)'(?:\s+and\s+namespace-uri\(\)='[^']*')?\]")


class MapParseError(Exception):
    """Raised when a map document cannot be read as a BizTalk map."""


def normalize_xpath(xpath: str, prefix: str) -> str:
    """Rewrite ``/*[local-name()='X']`` steps to ``/prefix:X`` (or ``/X``)."""
    qualify = (lambda name: f"/{prefix}:{name}") if prefix else (lambda name: f"/{name}")
    return _LOCAL_NAME_STEP.sub(lambda m: qualify(m.group(1)), xpath)


def _find_local(elem: Optional[Element], name: str) -> Optional[Element]:
    """First child whose local name is ``name``, whatever its namespace."""
    if elem is None:
        return None
    return next((child for child in elem if local_name(child.tag) == name), None)


def _int_attr(elem: Element, name: str, default: int) -> int:
    value = elem.get(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


class BtmParser:
    """Parses map documents. Holds no state between calls."""

    def __init__(self, config: MigratorConfig = None):
        self.config = config or migrator_config

    def parse(
        self,
        map_path: Union[str, Path],
        source_schema_path: Optional[Union[str, Path]] = None,
        target_schema_path: Optional[Union[str, Path]] = None,
    ) -> MapDocument:
        """Parse a map file.

        Args:
            map_path: Path to the .btm file
            source_schema_path: Optional source XSD
            target_schema_path: Optional target XSD

        Returns:
            Populated MapDocument (adjacency not yet resolved)

        Raises:
            FileNotFoundError: Map file does not exist
            MapParseError: Map is not well-formed or has no mapsource element
        """
        map_path = Path(map_path)
        if not map_path.is_file():
            raise FileNotFoundError(f"Map file not found: {map_path}")

        logger.info(f"Parsing map {map_path}")
        document = self.parse_content(
            map_path.read_bytes(),
            map_dir=map_path.parent,
            source_schema_path=source_schema_path,
            target_schema_path=target_schema_path,
        )
        document.map_path = map_path
        return document

    def parse_content(
        self,
        content: Union[bytes, str],
        map_dir: Union[str, Path] = ".",
        source_schema_path: Optional[Union[str, Path]] = None,
        target_schema_path: Optional[Union[str, Path]] = None,
    ) -> MapDocument:
        """Parse map XML already held in memory. See parse()."""
        data = content.encode("utf-8") if isinstance(content, str) else content
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise MapParseError(f"Map document is not well-formed XML: {e}") from e

        mapsource = root if local_name(root.tag) == "mapsource" else root.find(".//mapsource")
        if mapsource is None:
            raise MapParseError("Map document has no mapsource element")

        text = data.decode("utf-8") if isinstance(content, str) else decode_xml_bytes(data)
        schema_paths = {
            SOURCE: Path(source_schema_path) if source_schema_path else None,
            TARGET: Path(target_schema_path) if target_schema_path else None,
        }

        document = MapDocument()
        self._parse_schemas(document, root, mapsource, text, Path(map_dir), schema_paths)
        self._parse_functoids(document, root)
        self._parse_links(document, root)
        self._parse_schema_trees(document, mapsource, Path(map_dir), schema_paths)

        logger.info(
            f"Parsed map: {len(document.nodes)} functoids, {len(document.edges)} links, "
            f"{document.page_count} page(s)"
        )
        return document

    # Schemas and namespaces

    def _schema_type_name(self, tree: Optional[Element]) -> Optional[str]:
        if tree is None:
            return None
        schema = tree.get("Schema")
        if schema:
            return schema
        reference = _find_local(tree, "Reference")
        return reference.get("Location") if reference is not None else None

    def _parse_schemas(self, document: MapDocument, root: Element, mapsource: Element, text: str,
                       map_dir: Path, schema_paths: dict) -> None:
        source_tree = _find_local(mapsource, "SrcTree")
        target_tree = _find_local(mapsource, "TrgTree")

        document.source_schema_type = self._schema_type_name(source_tree)
        document.target_schema_type = self._schema_type_name(target_tree)
        document.source_schema_name = extract_schema_file_name(document.source_schema_type)
        document.target_schema_name = extract_schema_file_name(document.target_schema_type)
        logger.debug(f"Schemas: source={document.source_schema_name}, target={document.target_schema_name}")

        self._parse_namespaces(document, text)
        self._load_external_schemas(document, root, map_dir, schema_paths)

        for namespaces in (document.source_namespaces, document.target_namespaces):
            drop_empty_prefix(namespaces)
            ensure_xs_namespace(namespaces)

    def _parse_namespaces(self, document: MapDocument, text: str) -> None:
        for side, namespaces in ((SOURCE, document.source_namespaces), (TARGET, document.target_namespaces)):
            start_tag = find_start_tag(text, "SchemaReference", within=_TREE_TAGS[side])
            declarations = parse_declarations(start_tag) if start_tag else {}

            default_uri = declarations.pop("", None)
            for prefix, uri in declarations.items():
                add_declared_namespace(namespaces, prefix, uri)
            if default_uri:
                register_namespace(namespaces, default_uri)

            ensure_xs_namespace(namespaces)

    def _load_external_schemas(self, document: MapDocument, root: Element, map_dir: Path,
                               schema_paths: dict) -> None:
        processed: set[Path] = set()
        search_dirs = self.config.SCHEMA_SEARCH_DIRS

        def load(path: Optional[Path], side: str) -> None:
            if path is None:
                return
            resolved = path.resolve()
            if resolved in processed:
                return
            processed.add(resolved)
            namespaces = document.source_namespaces if side == SOURCE else document.target_namespaces
            try:
                merge_schema_namespaces(path, namespaces)
                document.loaded_schemas.append(path)
                logger.info(f"Loaded {side} schema namespaces from {path}")
            except (OSError, ValueError, ET.ParseError) as e:
                logger.warning(f"Skipping schema {path}: {e}")

        for side, path in schema_paths.items():
            if path is not None and path.is_file():
                load(path, side)

        for side, type_name in ((SOURCE, document.source_schema_type), (TARGET, document.target_schema_type)):
            load(find_xsd_for_type_name(type_name, map_dir, search_dirs), side)

        parents = {child: parent for parent in root.iter() for child in parent}
        for reference in (e for e in root.iter() if local_name(e.tag) == "Reference"):
            path = resolve_reference_location(reference.get("Location", ""), map_dir, search_dirs)
            load(path, self._reference_side(reference, parents))

    def _reference_side(self, elem: Element, parents: dict) -> str:
        current = parents.get(elem)
        while current is not None:
            if local_name(current.tag) == "TrgTree":
                return TARGET
            if local_name(current.tag) == "SrcTree":
                return SOURCE
            current = parents.get(current)
        return SOURCE

    # Functoids and links

    def _parse_functoids(self, document: MapDocument, root: Element) -> None:
        for elem in root.iter("Functoid"):
            type_code = elem.get("Functoid-FID")
            node = TransformNode(
                id=elem.get("FunctoidID", ""),
                kind=determine_functoid_kind(type_code),
                type_code=type_code,
                clsid=elem.get("Functoid-CLSID"),
                x=_int_attr(elem, "X-Cell", 0),
                y=_int_attr(elem, "Y-Cell", 0),
                page=_int_attr(elem, "Page", 1),
            )
            document.page_count = max(document.page_count, node.page)

            inputs = elem.find("Input-Parameters")
            if inputs is not None:
                for param in inputs.findall("Parameter"):
                    value = param.get("Value")
                    if value is None:
                        value = param.text or ""
                    node.parameters.append(Parameter(
                        kind=(param.get("Type") or "").lower(),
                        value=value,
                        order=_int_attr(param, "Order", len(node.parameters)),
                        guid=param.get("Guid"),
                    ))
                node.parameters.sort(key=lambda p: p.order)

            self._parse_script(node, elem.find("ScripterCode"))
            document.nodes.append(node)
            logger.debug(f"Functoid {node.id}: {node.kind} ({len(node.parameters)} params)")

    def _parse_script(self, node: TransformNode, scripter: Optional[Element]) -> None:
        if scripter is None:
            return
        script = scripter.find("Script")
        source = script if script is not None else scripter

        node.script_language = source.get("Language") or scripter.get("Language")
        node.script_assembly = source.get("Assembly") or scripter.get("Assembly")
        node.script_class = source.get("Class") or scripter.get("Class")
        node.script_function = source.get("Function") or scripter.get("Function")
        body = "".join(scripter.itertext()).strip()
        node.script_body = body or None

    def _parse_links(self, document: MapDocument, root: Element) -> None:
        for elem in root.iter("Link"):
            document.edges.append(Edge(
                id=elem.get("LinkID", ""),
                from_id=elem.get("LinkFrom", ""),
                to_id=elem.get("LinkTo", ""),
                label=elem.get("Label"),
                source_directive=elem.get("Compiler-Copy-Directive"),
                target_directive=elem.get("Compiler-Directive"),
            ))

    # Schema trees

    def _parse_schema_trees(self, document: MapDocument, mapsource: Element, map_dir: Path,
                            schema_paths: dict) -> None:
        sides = (
            (SOURCE, document.source_tree, document.source_schema_name,
             document.source_schema_type, document.source_namespaces),
            (TARGET, document.target_tree, document.target_schema_name,
             document.target_schema_type, document.target_namespaces),
        )
        for side, tree, schema_name, type_name, namespaces in sides:
            tree.schema_name = schema_name
            tree_elem = _find_local(mapsource, _TREE_TAGS[side])
            reference = _find_local(tree_elem, "SchemaReference")

            if reference is not None and len(reference):
                prefix = preferred_prefix(namespaces)
                tree.root = self._parse_inline_node(reference[0], None, prefix)
            else:
                tree.root = self._parse_external_tree(side, type_name, map_dir, schema_paths)

            tree.build_node_lookup()
            logger.debug(f"{side} tree: {len(tree.node_lookup)} addressable nodes")

    def _parse_inline_node(self, elem: Element, parent: Optional[SchemaTreeNode], prefix: str) -> SchemaTreeNode:
        name = local_name(elem.tag)
        segment = f"{prefix}:{name}" if prefix else name
        xpath = normalize_xpath(f"{parent.xpath if parent else ''}/{segment}", prefix)

        node = SchemaTreeNode(
            name=name,
            xpath=xpath,
            node_id=elem.get("TreeNodeID"),
            data_type=elem.get("type"),
            is_repeating=elem.get("maxOccurs") == "unbounded",
            parent=parent,
        )
        for child in elem:
            if isinstance(child.tag, str):
                node.children.append(self._parse_inline_node(child, node, prefix))
        return node

    def _parse_external_tree(self, side: str, type_name: Optional[str], map_dir: Path,
                             schema_paths: dict) -> Optional[SchemaTreeNode]:
        path = schema_paths.get(side)
        if path is None or not path.is_file():
            path = find_xsd_for_type_name(type_name, map_dir, self.config.SCHEMA_SEARCH_DIRS)
        if path is None:
            return None

        try:
            return build_tree_from_xsd(path)
        except (OSError, ValueError, ET.ParseError) as e:
            logger.warning(f"Could not build {side} schema tree from {path}: {e}")
            return None
