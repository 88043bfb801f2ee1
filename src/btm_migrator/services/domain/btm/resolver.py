#!/usr/bin/env python3
"""Adjacency between functoids and links.

Links are matched to functoids by id: a link whose LinkFrom is a functoid
id is one of that functoid's outputs, a link whose LinkTo is a functoid id
is one of its inputs. Input order follows the functoid's link parameters,
which is the operand order.
"""

import logging

from ....models.map_model import PARAM_LINK, Edge, MapDocument, TransformNode

logger = logging.getLogger(__name__)


class RelationshipResolver:
    """Builds and queries the functoid graph of one map document."""

    def __init__(self, document: MapDocument):
        self.document = document

    def resolve_relationships(self) -> None:
        """Rebuild lookups and populate input/output edges on every node.

        Safe to call more than once. Dangling endpoints are left unresolved.
        """
        doc = self.document
        doc.node_by_id = {node.id: node for node in doc.nodes}
        doc.edge_by_id = {edge.id: edge for edge in doc.edges}

        terminating: dict[str, list[Edge]] = {node.id: [] for node in doc.nodes}
        for node in doc.nodes:
            node.input_edges = []
            node.output_edges = []

        for edge in doc.edges:
            edge.from_node = doc.node_by_id.get(edge.from_id)
            edge.to_node = doc.node_by_id.get(edge.to_id)
            edge.from_is_node = edge.from_node is not None
            edge.to_is_node = edge.to_node is not None

            if edge.from_node is not None:
                edge.from_node.output_edges.append(edge)
            if edge.to_node is not None:
                terminating[edge.to_node.id].append(edge)

        for node in doc.nodes:
            for param in node.parameters:
                if param.kind != PARAM_LINK:
                    continue
                edge = doc.edge_by_id.get(param.value.strip())
                if edge is not None and edge not in node.input_edges:
                    node.input_edges.append(edge)
            for edge in terminating[node.id]:
                if edge not in node.input_edges:
                    node.input_edges.append(edge)

        logger.debug(f"Resolved {len(doc.edges)} links across {len(doc.nodes)} functoids")

    def get_functoid_chain(self, edge: Edge) -> list[TransformNode]:
        """Functoids feeding an edge, producers before consumers.

        Cycles end the branch that re-enters a visited functoid.
        """
        chain: list[TransformNode] = []
        visited: set[str] = set()

        def visit(identifier: str) -> None:
            if identifier in visited:
                return
            visited.add(identifier)
            node = self.document.node_by_id.get(identifier)
            if node is None:
                return
            for input_edge in node.input_edges:
                visit(input_edge.from_id)
            chain.append(node)

        visit(edge.from_id)
        return chain

    def get_target_nodes(self, node: TransformNode) -> list[str]:
        """Schema endpoints eventually reached from a functoid's outputs."""
        targets: list[str] = []
        visited: set[str] = set()

        def follow(current: TransformNode) -> None:
            if current.id in visited:
                return
            visited.add(current.id)
            for edge in current.output_edges:
                downstream = self.document.node_by_id.get(edge.to_id)
                if downstream is not None:
                    follow(downstream)
                elif edge.to_id not in targets:
                    targets.append(edge.to_id)

        follow(node)
        return targets
