#!/usr/bin/env python3
"""
Map translator: MapDocument -> TranslatedMap.

Every link that lands on the target side becomes a flat (target path,
expression) pair. Links from Looping/MassCopy/ExistenceLooping functoids
become loop frames instead. The pairs and frames are then assembled into
the mapping forest by the ForestBuilder.

Two strategies exist, chosen once per document. The tree strategy is used
when at least one link ends on a node of the parsed target schema tree;
otherwise link endpoints are treated as raw XPath literals.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ....core.config import MigratorConfig, migrator_config
from ....models.lml_model import TranslatedMap
from ....models.map_model import PARAM_CONSTANT, PARAM_LINK, Edge, MapDocument, SchemaTreeNode, TransformNode
from ..btm.functoid_types import LOGICAL_KINDS, LOOP_FRAME_KINDS
from ..btm.namespaces import is_utility_namespace, ns_slot_index
from ..btm.resolver import RelationshipResolver
from .expressions import build_expression, condition_expression
from .hierarchy import ForestBuilder
from .loops import EdiLoopStrategy, FlatMapping, LoopContext, LoopFrame, LoopStrategy
from .xpath import PathQualifier, needs_cleanup, path_key

logger = logging.getLogger(__name__)

STRATEGY_TREE = "tree"
STRATEGY_XPATH = "xpath"


@dataclass
class TranslationContext:
    """Mutable state of a single translate() call."""
    document: MapDocument
    resolver: RelationshipResolver
    qualifier: PathQualifier
    loop_context: LoopContext
    source_namespaces: dict[str, str]
    target_namespaces: dict[str, str]
    original_target_namespaces: dict[str, str]
    expression_cache: dict[str, str] = field(default_factory=dict)
    in_progress: set[str] = field(default_factory=set)


def merge_source_namespaces(source: dict[str, str], target: dict[str, str]) -> None:
    """Add source namespaces to the target table where prefix and URI are both new."""
    uris = set(target.values())
    for prefix, uri in source.items():
        if prefix in target or uri in uris:
            continue
        target[prefix] = uri
        uris.add(uri)


def _is_primary_candidate(uri: Optional[str], source_uris: set[str]) -> bool:
    return bool(uri) and not is_utility_namespace(uri) and uri not in source_uris


def enforce_target_namespace_as_ns0(target: dict[str, str], original_target: dict[str, str],
                                    source: dict[str, str]) -> bool:
    """Move the target's own namespace into slot ns0.

    Args:
        target: Merged target namespace table, modified in place
        original_target: Target table before source namespaces were merged in
        source: Source namespace table

    Returns:
        True if prefixes were swapped
    """
    if is_utility_namespace(original_target.get("ns0")):
        logger.debug("ns0 holds a utility namespace in the target schema, leaving prefixes as they are")
        return False

    source_uris = set(source.values())
    if _is_primary_candidate(target.get("ns0"), source_uris):
        return False

    candidates = sorted(
        (prefix for prefix in target
         if prefix != "ns0" and ns_slot_index(prefix) is not None
         and _is_primary_candidate(target[prefix], source_uris)),
        key=ns_slot_index,
    )
    if not candidates:
        return False

    primary = candidates[0]
    displaced = target.get("ns0")
    target["ns0"] = target[primary]
    if displaced is None:
        del target[primary]
    else:
        target[primary] = displaced
    logger.info(f"Target namespace {target['ns0']} moved from {primary} to ns0")
    return True


def _repeating_ancestor(node: Optional[SchemaTreeNode]) -> Optional[SchemaTreeNode]:
    while node is not None:
        if node.is_repeating:
            return node
        node = node.parent
    return None


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


class MapTranslator:
    """Translates a resolved map document into a mapping forest.

    The instance holds configuration only, so one translator can serve
    any number of conversions.
    """

    def __init__(self, config: MigratorConfig = None, loop_strategy: LoopStrategy = None):
        self.config = config or migrator_config
        self.loop_strategy = loop_strategy or EdiLoopStrategy(self.config)

    def translate(self, document: MapDocument, source_schema_path: Union[str, Path, None] = None,
                  target_schema_path: Union[str, Path, None] = None) -> TranslatedMap:
        """Translate a parsed map document.

        Args:
            document: Output of BtmParser
            source_schema_path: Source XSD, used for loop introspection and the header
            target_schema_path: Target XSD, used for loop introspection and the header

        Returns:
            TranslatedMap ready for the emitter
        """
        context = self._create_context(document, source_schema_path, target_schema_path)

        if self._uses_tree_strategy(document):
            strategy = STRATEGY_TREE
            mappings, frames = self._collect_tree(context)
        else:
            strategy = STRATEGY_XPATH
            mappings, frames = self._collect_xpath(context)
            frames.extend(self.loop_strategy.detect_implicit_loops(mappings, frames))

        logger.info(
            f"Translating {document.map_path or 'map'} with {strategy} strategy: "
            f"{len(mappings)} mappings, {len(frames)} loop frames"
        )

        forest = ForestBuilder().build(mappings, frames)
        enforce_target_namespace_as_ns0(
            context.target_namespaces, context.original_target_namespaces, context.source_namespaces
        )

        return TranslatedMap(
            source_schema=document.source_schema_name,
            target_schema=document.target_schema_name,
            map_path=document.map_path,
            source_schema_path=Path(source_schema_path) if source_schema_path else None,
            target_schema_path=Path(target_schema_path) if target_schema_path else None,
            source_namespaces=context.source_namespaces,
            target_namespaces=context.target_namespaces,
            mappings=forest,
            strategy=strategy,
        )

    def _create_context(self, document: MapDocument, source_schema_path, target_schema_path) -> TranslationContext:
        resolver = RelationshipResolver(document)
        resolver.resolve_relationships()

        source_namespaces = dict(document.source_namespaces)
        target_namespaces = dict(document.target_namespaces)
        original_target = dict(target_namespaces)
        merge_source_namespaces(source_namespaces, target_namespaces)

        qualifier = PathQualifier(source_namespaces, document.source_schema_name)
        loop_context = LoopContext(
            qualifier=qualifier,
            source_schema_path=_existing_file(source_schema_path),
            target_schema_path=_existing_file(target_schema_path),
        )
        return TranslationContext(
            document=document,
            resolver=resolver,
            qualifier=qualifier,
            loop_context=loop_context,
            source_namespaces=source_namespaces,
            target_namespaces=target_namespaces,
            original_target_namespaces=original_target,
        )

    @staticmethod
    def _uses_tree_strategy(document: MapDocument) -> bool:
        lookup = document.target_tree.node_lookup
        return bool(lookup) and any(edge.to_id in lookup for edge in document.edges)

    # Strategies

    def _collect_tree(self, context: TranslationContext) -> tuple[list[FlatMapping], list[LoopFrame]]:
        doc = context.document
        target_lookup = doc.target_tree.node_lookup
        mappings: list[FlatMapping] = []
        frames: list[LoopFrame] = []
        contributions: list[tuple[FlatMapping, Edge]] = []

        for edge in doc.edges:
            target = target_lookup.get(edge.to_id)
            if target is None:
                if edge.to_is_node:
                    continue
                if "/" in edge.to_id:
                    self._collect_xpath_edge(context, edge, mappings, frames)
                else:
                    logger.warning(f"Link {edge.id} ends on unknown endpoint {edge.to_id}, skipping")
                continue

            if self._collect_loop_edge(context, edge, target.xpath, mappings, frames):
                continue
            mapping = self._flat_mapping(context, edge, target.xpath)
            mappings.append(mapping)
            contributions.append((mapping, edge))

        frames.extend(self._cardinality_frames(context, contributions, frames))
        return mappings, frames

    def _collect_xpath(self, context: TranslationContext) -> tuple[list[FlatMapping], list[LoopFrame]]:
        mappings: list[FlatMapping] = []
        frames: list[LoopFrame] = []
        for edge in context.document.edges:
            if edge.to_is_node:
                continue
            self._collect_xpath_edge(context, edge, mappings, frames)
        return mappings, frames

    def _collect_xpath_edge(self, context: TranslationContext, edge: Edge,
                            mappings: list[FlatMapping], frames: list[LoopFrame]) -> None:
        target_path = context.qualifier.cleanup_target(edge.to_id)
        if self._collect_loop_edge(context, edge, target_path, mappings, frames):
            return
        mappings.append(self._flat_mapping(context, edge, target_path))

    def _collect_loop_edge(self, context: TranslationContext, edge: Edge, target_path: str,
                           mappings: list[FlatMapping], frames: list[LoopFrame]) -> bool:
        """Turn a link out of a loop functoid into a loop frame. False for other links."""
        origin = edge.from_node
        if origin is None or origin.kind not in LOOP_FRAME_KINDS:
            return False

        source_path = self._loop_source(context, origin)
        if not source_path:
            logger.warning(f"{origin.kind} functoid {origin.id} has no source, skipping link {edge.id}")
            return True

        result = self.loop_strategy.explicit_loop(origin.kind, source_path, target_path, context.loop_context)
        if isinstance(result, LoopFrame):
            frames.append(result)
        else:
            mappings.append(result)
        return True

    def _cardinality_frames(self, context: TranslationContext, contributions: list[tuple[FlatMapping, Edge]],
                            frames: list[LoopFrame]) -> list[LoopFrame]:
        """Loop frames for repeating target records whose fields are mapped.

        Each frame iterates the nearest repeating source ancestor of the
        source fields feeding the record.
        """
        doc = context.document
        explicit = {path_key(frame.target_item_path) for frame in frames}
        result = []

        for target in doc.target_tree.iter_nodes():
            if not target.is_repeating or target.parent is None:
                continue
            key = path_key(target.xpath)
            if key in explicit:
                continue

            inside = [
                edge for mapping, edge in contributions
                if len(path_key(mapping.target_path)) > len(key) and path_key(mapping.target_path)[:len(key)] == key
            ]
            loop_source = None
            for edge in inside:
                for source_field in self._source_fields(context, edge):
                    loop_source = _repeating_ancestor(source_field)
                    if loop_source is not None:
                        break
                if loop_source is not None:
                    break
            if loop_source is None:
                continue

            expression = context.qualifier.cleanup_loop(loop_source.xpath)
            logger.debug(f"Repeating record {target.xpath} iterates {expression}")
            result.append(LoopFrame(target_item_path=target.xpath, loop_expression=expression, origin="cardinality"))
        return result

    @staticmethod
    def _source_fields(context: TranslationContext, edge: Edge) -> list[SchemaTreeNode]:
        lookup = context.document.source_tree.node_lookup
        if edge.from_id in lookup:
            return [lookup[edge.from_id]]

        fields = []
        for node in context.resolver.get_functoid_chain(edge):
            for input_edge in node.input_edges:
                source_field = lookup.get(input_edge.from_id)
                if source_field is not None:
                    fields.append(source_field)
        return fields

    # Expressions

    def _flat_mapping(self, context: TranslationContext, edge: Edge, target_path: str) -> FlatMapping:
        expression = self._clean(context, self._resolve_source(context, edge.from_id))

        condition = None
        node = edge.from_node
        if node is not None and node.kind in LOGICAL_KINDS:
            condition = condition_expression(node, self._resolve_parameters(context, node))
        return FlatMapping(target_path=target_path, expression=expression, condition=condition)

    def _loop_source(self, context: TranslationContext, node: TransformNode) -> Optional[str]:
        if not node.parameters:
            return None
        param = node.parameters[0]
        if param.kind == PARAM_LINK:
            edge = context.document.edge_by_id.get(param.value.strip())
            raw = self._resolve_source(context, edge.from_id) if edge is not None else param.value
        else:
            raw = param.value
        raw = _unquote(raw)
        return context.qualifier.cleanup_loop(raw) if needs_cleanup(raw) else raw

    def _resolve_parameters(self, context: TranslationContext, node: TransformNode) -> list[str]:
        return [self._resolve_parameter(context, param) for param in node.parameters]

    def _resolve_parameter(self, context: TranslationContext, param) -> str:
        if param.kind == PARAM_CONSTANT:
            return f'"{param.value}"'
        if param.kind == PARAM_LINK:
            edge = context.document.edge_by_id.get(param.value.strip())
            if edge is None:
                logger.debug(f"Parameter references unknown link {param.value}")
                return param.value
            return self._clean(context, self._resolve_source(context, edge.from_id))
        return param.value

    def _resolve_source(self, context: TranslationContext, identifier: str) -> str:
        """Expression for a link origin: schema field path, functoid output or the raw id."""
        doc = context.document
        source_field = doc.source_tree.node_lookup.get(identifier)
        if source_field is not None:
            return source_field.xpath
        node = doc.node_by_id.get(identifier)
        if node is not None:
            return self._translate_node(context, node)
        return identifier

    @staticmethod
    def _clean(context: TranslationContext, expression: str) -> str:
        return context.qualifier.cleanup_source(expression) if needs_cleanup(expression) else expression

    def _translate_node(self, context: TranslationContext, node: TransformNode) -> str:
        cached = context.expression_cache.get(node.id)
        if cached is not None:
            return cached
        if node.id in context.in_progress:
            logger.warning(f"Circular reference through functoid {node.id} ({node.kind})")
            return f"/* Circular reference: {node.kind} {node.id} */"

        context.in_progress.add(node.id)
        try:
            params = self._resolve_parameters(context, node)
            feeds_target_field = any(not edge.to_is_node for edge in node.output_edges)
            expression = build_expression(node, params, feeds_target_field)
        finally:
            context.in_progress.discard(node.id)

        logger.debug(f"Functoid {node.id} ({node.kind}) -> {expression}")
        context.expression_cache[node.id] = expression
        return expression


def _existing_file(path: Union[str, Path, None]) -> Optional[Path]:
    if not path:
        return None
    path = Path(path)
    return path if path.is_file() else None
