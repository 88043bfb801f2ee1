#!/usr/bin/env python3
"""Best-effort structural reads of XSD files referenced by a map.

Only what the converter needs: namespace declarations, the element tree
below the first global element, and the children/attributes of a named
element. No validation is attempted.
"""

import codecs
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET

from ....models.map_model import SchemaTreeNode
from .namespaces import XS_NAMESPACE, add_declared_namespace, register_namespace

logger = logging.getLogger(__name__)

XS = f"{{{XS_NAMESPACE}}}"
COMPOSITORS = ("sequence", "choice", "all")

_DECLARATION = re.compile(r'\bxmlns(?::([A-Za-z0-9_.-]+))?\s*=\s*(["\'])(.*?)\2', re.S)


@dataclass
class XsdChild:
    """Direct child element of a complex type."""
    name: str
    is_repeating: bool = False


@dataclass
class XsdNamespaces:
    declared: dict[str, str]                # xmlns:prefix declarations on xs:schema
    default_namespace: Optional[str]
    target_namespace: Optional[str]
    imported: list[str]                     # xs:import / xs:include namespaces


def decode_xml_bytes(data: bytes) -> str:
    """Decode XML bytes for text scanning, honouring a UTF-16/UTF-8 BOM."""
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16")
    if data.startswith(codecs.BOM_UTF8):
        return data.decode("utf-8-sig")
    return data.decode("utf-8", errors="replace")


def parse_declarations(start_tag: str) -> dict[str, str]:
    """Extract namespace declarations from the text of one start tag.

    ElementTree drops xmlns attributes, so they are read from the raw markup.
    The default namespace is returned under the empty prefix.
    """
    return {prefix or "": uri for prefix, _, uri in _DECLARATION.findall(start_tag)}


def find_start_tag(text: str, local_name: str, within: Optional[str] = None) -> Optional[str]:
    """Return the raw start tag of the first element with the given local name.

    Args:
        text: Document text
        local_name: Element local name to look for
        within: Optional enclosing element local name; the search is limited
            to the first such element's content

    Returns:
        The start tag markup, or None when not found
    """
    if within:
        container = re.search(
            rf"<(?:[\w.-]+:)?{within}\b[^>]*?(?:/>|>(.*?)</(?:[\w.-]+:)?{within}\s*>)",
            text,
            re.S,
        )
        if container is None or container.group(1) is None:
            return None
        text = container.group(1)

    match = re.search(rf"<(?:[\w.-]+:)?{local_name}\b[^>]*>", text, re.S)
    return match.group(0) if match else None


def local_name(tag_or_qname: Optional[str]) -> str:
    """Strip a Clark-notation namespace or a prefix from a name."""
    if not tag_or_qname:
        return ""
    if "}" in tag_or_qname:
        tag_or_qname = tag_or_qname.split("}", 1)[1]
    return tag_or_qname.split(":", 1)[-1]


def read_schema_namespaces(xsd_path: Path) -> XsdNamespaces:
    """Read the namespace information an XSD contributes.

    Raises:
        OSError: File cannot be read
        ET.ParseError: File is not well-formed XML
        ValueError: Root element is not xs:schema
    """
    data = Path(xsd_path).read_bytes()
    root = ET.fromstring(data)
    if root.tag != f"{XS}schema":
        raise ValueError(f"{xsd_path} is not an XML Schema (root is {root.tag})")

    start_tag = find_start_tag(decode_xml_bytes(data), "schema") or ""
    declarations = parse_declarations(start_tag)
    default_namespace = declarations.pop("", None)

    imported = []
    for tag in ("import", "include"):
        for elem in root.findall(f"{XS}{tag}"):
            namespace = elem.get("namespace")
            if namespace and namespace not in imported:
                imported.append(namespace)

    return XsdNamespaces(
        declared=declarations,
        default_namespace=default_namespace or None,
        target_namespace=root.get("targetNamespace") or None,
        imported=imported,
    )


def merge_schema_namespaces(xsd_path: Path, namespaces: dict[str, str]) -> None:
    """Merge an XSD's namespaces into a prefix table (in place)."""
    info = read_schema_namespaces(xsd_path)

    for prefix, uri in info.declared.items():
        if prefix == "xs" or uri == XS_NAMESPACE:
            continue
        add_declared_namespace(namespaces, prefix, uri)

    for uri in (info.default_namespace, info.target_namespace, *info.imported):
        if uri and uri != XS_NAMESPACE:
            register_namespace(namespaces, uri)

    logger.debug(f"Merged namespaces from {xsd_path}: {namespaces}")


# Schema file lookup


def extract_schema_file_name(type_name: Optional[str]) -> Optional[str]:
    """Turn an assembly-qualified schema type name into a file name.

    Example:
        >>> extract_schema_file_name("Contoso.Schemas.Order, Contoso.Schemas, Version=1.0.0.0")
        'Order.xsd'
    """
    if not type_name or not type_name.strip():
        return None
    first = type_name.split(",")[0].strip()
    if not first:
        return None
    if first.lower().endswith(".xsd"):
        return Path(first.replace("\\", "/")).name
    simple = first.rsplit(".", 1)[-1] if "." in first else first
    return f"{simple}.xsd"


def search_directories(map_dir: Path, relative_dirs: list[str]) -> list[Path]:
    return [(map_dir / relative).resolve() for relative in relative_dirs]


def find_xsd_for_type_name(type_name: Optional[str], map_dir: Path, relative_dirs: list[str]) -> Optional[Path]:
    """Locate the XSD file for a schema type name near the map file."""
    file_name = extract_schema_file_name(type_name)
    if not file_name:
        return None

    first = type_name.split(",")[0].strip()
    candidates = [file_name, first.replace(".", "") + ".xsd"]

    for directory in search_directories(map_dir, relative_dirs):
        for candidate in candidates:
            path = directory / candidate
            if path.is_file():
                return path
    return None


def resolve_reference_location(location: str, map_dir: Path, relative_dirs: list[str]) -> Optional[Path]:
    """Resolve a Reference/@Location value to an existing XSD file."""
    if not location or not location.strip():
        return None
    location = location.strip()

    if location.lower().endswith(".xsd"):
        path = Path(location.replace("\\", "/"))
        if path.is_absolute() and path.is_file():
            return path
        relative = map_dir / path
        if relative.is_file():
            return relative
        for directory in search_directories(map_dir, relative_dirs):
            by_name = directory / path.name
            if by_name.is_file():
                return by_name
        return None

    return find_xsd_for_type_name(location, map_dir, relative_dirs)


# Structural reads


class _SchemaIndex:
    """Global complex types, groups and elements of one XSD."""

    def __init__(self, root: Element):
        self.root = root
        self.complex_types = {ct.get("name"): ct for ct in root.findall(f"{XS}complexType") if ct.get("name")}
        self.groups = {g.get("name"): g for g in root.findall(f"{XS}group") if g.get("name")}
        self.elements = {e.get("name"): e for e in root.findall(f"{XS}element") if e.get("name")}

    def complex_type_of(self, element: Element) -> Optional[Element]:
        inline = element.find(f"{XS}complexType")
        if inline is not None:
            return inline
        return self.complex_types.get(local_name(element.get("type")))

    def resolve_ref(self, element: Element) -> Element:
        ref = element.get("ref")
        if ref:
            return self.elements.get(local_name(ref), element)
        return element


def _load_schema_root(xsd_path: Path) -> Optional[Element]:
    root = ET.fromstring(Path(xsd_path).read_bytes())
    if root.tag != f"{XS}schema":
        logger.warning(f"{xsd_path} has no xs:schema root element")
        return None
    return root


def _is_repeating(element: Element) -> bool:
    max_occurs = element.get("maxOccurs", "1")
    if max_occurs == "unbounded":
        return True
    try:
        return int(max_occurs) > 1
    except ValueError:
        return False


def _content_elements(container: Element, index: _SchemaIndex, active: frozenset):
    """Yield element declarations below a complex type or compositor, in order."""
    for child in container:
        tag = local_name(child.tag)
        if tag == "element":
            yield child
        elif tag in COMPOSITORS:
            yield from _content_elements(child, index, active)
        elif tag == "group":
            name = local_name(child.get("ref"))
            group = index.groups.get(name)
            key = f"group:{name}"
            if group is not None and key not in active:
                yield from _content_elements(group, index, active | {key})
            else:
                yield from _content_elements(child, index, active)
        elif tag in ("complexContent", "extension", "restriction"):
            yield from _content_elements(child, index, active)


def _build_node(element: Element, parent: Optional[SchemaTreeNode], index: _SchemaIndex,
                active: frozenset) -> Optional[SchemaTreeNode]:
    declaration = index.resolve_ref(element)
    name = declaration.get("name") or local_name(element.get("ref"))
    if not name:
        return None

    xpath = f"{parent.xpath if parent else ''}/{name}"
    node = SchemaTreeNode(
        name=name,
        xpath=xpath,
        data_type=declaration.get("type"),
        is_repeating=element.get("maxOccurs") == "unbounded",
        parent=parent,
    )

    complex_type = index.complex_type_of(declaration)
    type_key = f"type:{declaration.get('type') or id(complex_type)}"
    if complex_type is None or type_key in active:
        return node

    for child_element in _content_elements(complex_type, index, active | {type_key}):
        child = _build_node(child_element, node, index, active | {type_key})
        if child is not None:
            node.children.append(child)
    return node


def build_tree_from_xsd(xsd_path: Path) -> Optional[SchemaTreeNode]:
    """Build an unqualified schema tree from the first global element of an XSD."""
    root = _load_schema_root(xsd_path)
    if root is None:
        return None

    first = root.find(f"{XS}element")
    if first is None:
        logger.warning(f"No global element declared in {xsd_path}")
        return None

    return _build_node(first, None, _SchemaIndex(root), frozenset())


def _find_element_declaration(index: _SchemaIndex, element_name: str) -> Optional[Element]:
    for element in index.root.iter(f"{XS}element"):
        if element.get("name") == element_name:
            return element
    return None


def find_element_children(xsd_path: Path, element_name: str) -> list[XsdChild]:
    """Direct child elements of a named element's first compositor.

    Returns an empty list when the schema cannot be read or the element is
    not declared.
    """
    try:
        root = _load_schema_root(xsd_path)
    except (OSError, ET.ParseError) as e:
        logger.warning(f"Could not read schema {xsd_path}: {e}")
        return []
    if root is None:
        return []

    index = _SchemaIndex(root)
    declaration = _find_element_declaration(index, local_name(element_name))
    if declaration is None:
        return []

    complex_type = index.complex_type_of(declaration)
    if complex_type is None:
        return []

    compositor = next((c for c in complex_type if local_name(c.tag) in COMPOSITORS), None)
    if compositor is None:
        return []

    children = []
    for child in compositor.findall(f"{XS}element"):
        name = child.get("name") or local_name(child.get("ref"))
        if name:
            children.append(XsdChild(name=name, is_repeating=_is_repeating(child)))
    return children


def find_element_attributes(xsd_path: Path, element_name: str) -> list[str]:
    """Attribute names declared anywhere in a named element's complex type."""
    try:
        root = _load_schema_root(xsd_path)
    except (OSError, ET.ParseError) as e:
        logger.warning(f"Could not read schema {xsd_path}: {e}")
        return []
    if root is None:
        return []

    index = _SchemaIndex(root)
    declaration = _find_element_declaration(index, local_name(element_name))
    if declaration is None:
        return []

    complex_type = index.complex_type_of(declaration)
    if complex_type is None:
        return []

    return [a.get("name") for a in complex_type.iter(f"{XS}attribute") if a.get("name")]
