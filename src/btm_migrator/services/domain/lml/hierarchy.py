#!/usr/bin/env python3
"""Assembly of the mapping forest from flat target-path mappings.

Flat mappings are grouped by path into element nodes (attributes attach to
their owning element), loop frames then move their item element under a
``$for`` node with expressions made relative to the loop, and duplicate
loop output is pruned.
"""

import logging

from ....models.lml_model import LOOP_SENTINEL, MappingNode
from .loops import FlatMapping, LoopFrame
from .xpath import path_key, relativize_expression, split_path

logger = logging.getLogger(__name__)


class ForestBuilder:
    """Builds one mapping forest. Use a fresh instance per translation."""

    def __init__(self):
        self.roots: list[MappingNode] = []
        self._index: dict[tuple, MappingNode] = {}
        self._conditions: dict[int, str] = {}

    def build(self, mappings: list[FlatMapping], frames: list[LoopFrame]) -> list[MappingNode]:
        for mapping in mappings:
            self.add_mapping(mapping)

        for frame in sorted(_distinct_frames(frames), key=lambda f: -len(split_path(f.target_item_path))):
            self.apply_loop(frame)

        self._apply_conditions()
        suppress_duplicate_loops(self.roots)
        return self.roots

    def element(self, segments: list[str]) -> MappingNode:
        """Find or create the element node for a path, creating ancestors."""
        key = path_key("/".join(segments))
        node = self._index.get(key)
        if node is not None:
            return node

        node = MappingNode(target_path=segments[-1])
        if len(segments) == 1:
            self.roots.append(node)
        else:
            self.element(segments[:-1]).children.append(node)
        self._index[key] = node
        return node

    def add_mapping(self, mapping: FlatMapping) -> None:
        segments = split_path(mapping.target_path)
        if not segments:
            logger.warning(f"Ignoring mapping with empty target path: {mapping.expression}")
            return

        leaf = segments[-1]
        if leaf.startswith("@"):
            if len(segments) == 1:
                logger.warning(f"Ignoring root-level attribute mapping {leaf}")
                return
            owner = self.element(segments[:-1])
            name = "@" + leaf[1:].split(":", 1)[-1]
            if name in owner.attributes:
                logger.warning(f"Duplicate mapping for attribute {mapping.target_path}; keeping the first")
                return
            owner.attributes[name] = mapping.expression
            return

        node = self.element(segments)
        if node.source_expression:
            logger.warning(f"Duplicate mapping for {mapping.target_path}; keeping the first")
            return
        node.source_expression = mapping.expression
        if mapping.condition:
            self._conditions[id(node)] = mapping.condition

    def apply_loop(self, frame: LoopFrame) -> None:
        segments = split_path(frame.target_item_path)
        if not segments:
            return

        item = self._index.get(path_key(frame.target_item_path))
        parent = self.element(segments[:-1]) if len(segments) > 1 else None
        siblings = parent.children if parent is not None else self.roots

        position = next((i for i, sibling in enumerate(siblings) if sibling is item), None)
        if position is not None:
            del siblings[position]
        else:
            position = len(siblings)
            item = MappingNode(target_path=segments[-1])

        relativize_subtree(item, frame.loop_expression)
        for name, expression in frame.attributes.items():
            item.attributes.setdefault(name, expression)

        loop = MappingNode(
            target_path=LOOP_SENTINEL,
            is_loop=True,
            loop_expression=frame.loop_expression,
            children=[item],
        )
        siblings.insert(position, loop)
        logger.debug(f"Loop $for({frame.loop_expression}) wraps {frame.target_item_path} ({frame.origin})")

    def _apply_conditions(self) -> None:
        for node in _walk(self.roots):
            condition = self._conditions.get(id(node))
            if condition and (node.children or node.attributes):
                node.is_conditional = True
                node.conditional_expression = condition
                node.source_expression = ""


def _walk(nodes: list[MappingNode]):
    for node in nodes:
        yield node
        yield from _walk(node.children)


def _distinct_frames(frames: list[LoopFrame]) -> list[LoopFrame]:
    """One frame per target item, keeping the shortest (outermost) source."""
    chosen: dict[tuple, LoopFrame] = {}
    for frame in frames:
        key = path_key(frame.target_item_path)
        current = chosen.get(key)
        if current is None or len(frame.loop_expression) < len(current.loop_expression):
            chosen[key] = frame
    return list(chosen.values())


def relativize_subtree(node: MappingNode, base: str) -> None:
    """Rewrite every expression below a loop item relative to the loop base."""
    node.source_expression = relativize_expression(node.source_expression, base)
    node.conditional_expression = relativize_expression(node.conditional_expression, base)
    if node.is_loop:
        node.loop_expression = relativize_expression(node.loop_expression, base)
    node.attributes = {name: relativize_expression(value, base) for name, value in node.attributes.items()}
    for child in node.children:
        relativize_subtree(child, base)


def suppress_duplicate_loops(nodes: list[MappingNode]) -> None:
    """Prune siblings duplicated by loop frames (in place, bottom-up).

    Only the first ``$for`` frame per item name survives, and plain element
    siblings with the same name as a looped item are removed.
    """
    for node in nodes:
        suppress_duplicate_loops(node.children)
        node.children = _prune_siblings(node.children)

    nodes[:] = _prune_siblings(nodes)


def _item_names(loop: MappingNode) -> set[str]:
    return {path_key(child.target_path)[-1] for child in loop.children if path_key(child.target_path)}


def _prune_siblings(siblings: list[MappingNode]) -> list[MappingNode]:
    covered: set[str] = set()
    kept = []
    for node in siblings:
        if node.is_loop_frame:
            names = _item_names(node)
            if names and names & covered:
                logger.debug(f"Dropping duplicate loop $for({node.loop_expression})")
                continue
            covered |= names
        kept.append(node)

    return [
        node for node in kept
        if node.is_loop_frame or not path_key(node.target_path) or path_key(node.target_path)[-1] not in covered
    ]
