from typing import List, Optional, Set, AbstractSet

from ..graph.store import GraphStore
from ..types import (
    CodeGraph, GraphNode, GraphRelation, ViewLens, LensType, DepthRange,
    DomainNode, MAX_DEPTH,
)
from ..utils.logger import app_logger


class LensEngine:
    """Computes the node and relation subset visible through a lens."""

    def __init__(self, store: Optional[GraphStore] = None):
        self.logger = app_logger.bind(component="lens_engine")
        self.store = store or GraphStore()

    def ordered_nodes(self, graph: CodeGraph) -> List[GraphNode]:
        """All nodes in tree pre-order from the root, then unreachable ones in insertion order."""
        ordered = []
        root = graph.root
        if root is not None:
            ordered.append(root)
            ordered.extend(self.store.get_descendants(graph, root.id))

        seen = {node.id for node in ordered}
        ordered.extend(node for node in graph.nodes.values() if node.id not in seen)
        return ordered

    def _focus_scope(self, graph: CodeGraph, focus_node_id: Optional[str]) -> Optional[Set[str]]:
        if not focus_node_id or focus_node_id == graph.root_node_id:
            return None
        if focus_node_id not in graph.nodes:
            self.logger.debug(f"Focus node {focus_node_id} not found, ignoring focus")
            return None

        # Ancestors stay visible so the focused node keeps its subgraph nesting
        scope = {focus_node_id}
        scope.update(n.id for n in self.store.get_ancestors(graph, focus_node_id))
        scope.update(n.id for n in self.store.get_descendants(graph, focus_node_id))
        return scope

    def get_visible_nodes(
        self,
        graph: CodeGraph,
        lens: ViewLens,
        focus_node_id: Optional[str] = None,
        depth_range: Optional[DepthRange] = None,
    ) -> List[GraphNode]:
        """Nodes visible through the lens, in stored tree order."""
        nodes = self.ordered_nodes(graph)

        # The domain view is rendered from the domain model; no technical filtering applies
        if lens.type == LensType.DOMAIN:
            return nodes

        node_filter = lens.node_filter
        min_depth = node_filter.min_depth if node_filter.min_depth is not None else 0
        max_depth = node_filter.max_depth if node_filter.max_depth is not None else MAX_DEPTH
        if depth_range is not None:
            if depth_range.min is not None:
                min_depth = depth_range.min
            if depth_range.max is not None:
                max_depth = depth_range.max

        scope = self._focus_scope(graph, focus_node_id)

        visible = []
        for node in nodes:
            override = node.lens_config.get(lens.id)
            if override is not None and override.visible is False:
                continue
            if node_filter.kinds and node.kind not in node_filter.kinds:
                continue
            if node.depth < min_depth or node.depth > max_depth:
                continue
            if node_filter.tags and not any(tag in node.tags for tag in node_filter.tags):
                continue
            if scope is not None and node.id not in scope:
                continue
            visible.append(node)
        return visible

    def get_visible_relations(
        self,
        graph: CodeGraph,
        lens: ViewLens,
        visible_node_ids: AbstractSet[str],
    ) -> List[GraphRelation]:
        """Relations whose endpoints are both visible and whose type the lens admits."""
        allowed_types = lens.relation_filter.types
        visible = []
        for rel in graph.relations.values():
            if rel.source_id not in visible_node_ids or rel.target_id not in visible_node_ids:
                continue
            if rel.lens_visibility.get(lens.id) is False:
                continue
            if allowed_types and rel.type not in allowed_types:
                continue
            visible.append(rel)
        return visible

    def get_visible_domain_nodes(self, graph: CodeGraph) -> List[DomainNode]:
        return list(graph.domain_nodes.values())
