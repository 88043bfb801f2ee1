#!/usr/bin/env python3
"""
Loop detection strategies.

Deciding where a map iterates is heuristic: BizTalk rarely states it
outright. The translator asks a LoopStrategy two questions: how to turn an
explicit Looping/MassCopy functoid into a loop frame, and which groups of
plain field mappings look like an unstated loop. EdiLoopStrategy answers
them with the conventions of X12/EDIFACT schemas (``...LoopN`` repeating
groups).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ....core.config import MigratorConfig, migrator_config
from ..btm.xsd import find_element_attributes, find_element_children
from .xpath import PathQualifier, common_parent_prefix, path_key, split_path, strip_prefix

logger = logging.getLogger(__name__)


@dataclass
class FlatMapping:
    """One target location and the expression that fills it."""
    target_path: str                        # Absolute, may carry prefixes
    expression: str
    condition: Optional[str] = None         # Bare condition when fed by a logical functoid


@dataclass
class LoopFrame:
    """Request to wrap a target element in ``$for(loop_expression)``."""
    target_item_path: str                   # Absolute path of the repeated target element
    loop_expression: str                    # Absolute source path iterated over
    attributes: dict[str, str] = field(default_factory=dict)
    origin: str = "explicit"                # explicit, cardinality or implicit


@dataclass
class LoopContext:
    """What a strategy may consult for one conversion."""
    qualifier: PathQualifier
    source_schema_path: Optional[Path] = None
    target_schema_path: Optional[Path] = None


class LoopStrategy(ABC):
    """Decides where loop frames go."""

    @abstractmethod
    def explicit_loop(self, kind: str, source_path: str, target_path: str,
                      context: LoopContext) -> Union[LoopFrame, FlatMapping]:
        """Materialize a Looping/MassCopy/ExistenceLooping functoid.

        Returns a LoopFrame, or a FlatMapping when the functoid reduces to a
        plain copy.
        """

    @abstractmethod
    def detect_implicit_loops(self, mappings: list[FlatMapping],
                              existing: list[LoopFrame]) -> list[LoopFrame]:
        """Find loop frames implied by groups of plain field mappings."""


class EdiLoopStrategy(LoopStrategy):
    """Loop conventions of EDI schemas, with XSD introspection as fallback."""

    def __init__(self, config: MigratorConfig = None):
        config = config or migrator_config
        self.marker = (config.LOOP_SEGMENT_MARKER or "loop").lower()
        self.detect_implicit = config.DETECT_IMPLICIT_LOOPS
        self.min_siblings = config.IMPLICIT_LOOP_MIN_SIBLINGS
        self.min_depth = config.IMPLICIT_LOOP_MIN_DEPTH

    def explicit_loop(self, kind: str, source_path: str, target_path: str,
                      context: LoopContext) -> Union[LoopFrame, FlatMapping]:
        loop_path = self.loop_segment_path(source_path, context.qualifier)
        if loop_path:
            logger.debug(f"{kind}: loop segment found, iterating {loop_path} into {target_path}")
            return LoopFrame(target_item_path=target_path, loop_expression=loop_path)

        frame = self._frame_from_schemas(source_path, target_path, context)
        if frame is not None:
            return frame

        if kind == "MassCopy":
            logger.debug(f"MassCopy without repeating structure, copying {source_path} to {target_path}")
            return FlatMapping(target_path=target_path, expression=source_path)
        return LoopFrame(target_item_path=target_path, loop_expression=source_path)

    def loop_segment_path(self, source_path: str, qualifier: PathQualifier) -> Optional[str]:
        """Truncate a source path at its deepest ``...Loop...`` segment.

        Example:
            >>> strategy.loop_segment_path("/ns0:X12/ns0:PO1Loop1/ns0:PO1/PO102", qualifier)
            '/ns0:X12/ns0:PO1Loop1'
        """
        segments = split_path(source_path)
        for index in range(len(segments) - 1, -1, -1):
            segment = segments[index]
            if segment.startswith("@") or "(" in segment:
                continue
            if self.marker in strip_prefix(segment).lower():
                kept = [qualifier.qualify_edi_segment(s) for s in segments[:index + 1]]
                return "/" + "/".join(kept)
        return None

    def _frame_from_schemas(self, source_path: str, target_path: str,
                            context: LoopContext) -> Optional[LoopFrame]:
        if context.source_schema_path is None or context.target_schema_path is None:
            return None

        source_segments = split_path(source_path)
        target_segments = split_path(target_path)
        if not source_segments or not target_segments:
            return None

        source_children = find_element_children(context.source_schema_path, strip_prefix(source_segments[-1]))
        target_children = find_element_children(context.target_schema_path, strip_prefix(target_segments[-1]))
        source_child = next((c for c in source_children if c.is_repeating), None)
        target_child = next((c for c in target_children if c.is_repeating), None)
        if source_child is None or target_child is None:
            return None

        source_attributes = {
            name.lower(): name
            for name in find_element_attributes(context.source_schema_path, source_child.name)
        }
        attributes = {}
        for name in find_element_attributes(context.target_schema_path, target_child.name):
            match = source_attributes.get(name.lower())
            if match:
                attributes[f"@{name}"] = f"@{match}"

        logger.debug(
            f"Schema-derived loop: {source_child.name} -> {target_child.name} "
            f"({len(attributes)} matching attributes)"
        )
        return LoopFrame(
            target_item_path=f"{target_path.rstrip('/')}/{target_child.name}",
            loop_expression=f"{source_path.rstrip('/')}/{source_child.name}",
            attributes=attributes,
        )

    def detect_implicit_loops(self, mappings: list[FlatMapping],
                              existing: list[LoopFrame]) -> list[LoopFrame]:
        if not self.detect_implicit:
            return []

        groups: dict[tuple, list[FlatMapping]] = {}
        parents: dict[tuple, str] = {}
        for mapping in mappings:
            segments = split_path(mapping.target_path)
            if len(segments) < self.min_depth:
                continue
            parent = "/" + "/".join(segments[:-1])
            key = path_key(parent)
            groups.setdefault(key, []).append(mapping)
            parents.setdefault(key, parent)

        covered = [path_key(frame.target_item_path) for frame in existing]
        frames = []
        for key, members in groups.items():
            if len(members) < self.min_siblings:
                continue
            if any(key[:len(c)] == c for c in covered):
                continue

            sources = [m.expression for m in members if m.expression.startswith("/") and "(" not in m.expression]
            if len(sources) < 2:
                continue

            prefix = common_parent_prefix(sources)
            if not prefix:
                continue

            logger.debug(f"Implicit loop over {prefix} for {parents[key]} ({len(members)} fields)")
            frames.append(LoopFrame(target_item_path=parents[key], loop_expression=prefix, origin="implicit"))
        return frames
