"""
Interactive editing session over a single canonical graph value.

The session is the only writer: store operations return new graph values and
the session swaps them in, keeping an undo history and the current view state
(lens, focus breadcrumbs, depth range).
"""
from typing import List, Optional, Callable

from .analysis.anomaly_detector import AnomalyDetector
from .config import settings
from .domain.model_builder import DomainModelBuilder, DomainModelResult
from .flow.flow_service import FlowService
from .flow.models import FlowGenerationResult
from .graph.lenses import component_lens
from .graph.store import GraphStore
from .render.mermaid_renderer import MermaidRenderer
from .types import Anomaly, CodeGraph, DepthRange, GraphNode
from .utils.logger import app_logger


class GraphSession:
    """Holds the canonical graph plus view state for one editor."""

    def __init__(
        self,
        graph: CodeGraph,
        store: Optional[GraphStore] = None,
        renderer: Optional[MermaidRenderer] = None,
        detector: Optional[AnomalyDetector] = None,
        history_limit: Optional[int] = None,
    ):
        self.logger = app_logger.bind(component="graph_session")
        self.store = store or GraphStore()
        self.renderer = renderer or MermaidRenderer()
        self.detector = detector or AnomalyDetector()
        self.flow_service = FlowService(store=self.store)
        self.domain_builder = DomainModelBuilder(store=self.store)
        self.history_limit = history_limit if history_limit is not None else settings.history_limit

        self.graph = graph
        self._undo: List[CodeGraph] = []
        self._redo: List[CodeGraph] = []

        self.focus_stack: List[str] = []
        self.depth_range: Optional[DepthRange] = None

    # --- Mutation ---

    def apply(self, mutation: Callable[[CodeGraph], CodeGraph]) -> CodeGraph:
        """Run a graph -> graph function and record the previous value for undo."""
        updated = mutation(self.graph)
        if updated is self.graph:
            return self.graph
        self._undo.append(self.graph)
        if len(self._undo) > self.history_limit:
            self._undo.pop(0)
        self._redo.clear()
        self.graph = updated
        self._drop_stale_focus()
        return self.graph

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self.graph)
        self.graph = self._undo.pop()
        self._drop_stale_focus()
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self.graph)
        self.graph = self._redo.pop()
        self._drop_stale_focus()
        return True

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def add_node(self, name, kind, parent_id=None, **kwargs) -> str:
        """Add a node, defaulting the parent to the graph root."""
        node_id = None

        def mutation(graph):
            nonlocal node_id
            graph, node_id = self.store.add_node(graph, name, kind, parent_id or graph.root_node_id, **kwargs)
            return graph

        self.apply(mutation)
        return node_id

    def add_relation(self, source_id, target_id, type, label=None) -> str:
        relation_id = None

        def mutation(graph):
            nonlocal relation_id
            graph, relation_id = self.store.add_relation(graph, source_id, target_id, type, label)
            return graph

        self.apply(mutation)
        return relation_id

    def rename_node(self, node_id: str, name: str):
        self.apply(lambda g: self.store.rename_node(g, node_id, name))

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and its subtree. The root is never removed."""
        if node_id == self.graph.root_node_id:
            self.logger.warning(f"Refusing to remove root node {node_id}")
            return False
        if node_id not in self.graph.nodes:
            return False
        self.apply(lambda g: self.store.remove_node(g, node_id))
        return True

    def remove_relation(self, relation_id: str):
        self.apply(lambda g: self.store.remove_relation(g, relation_id))

    async def generate_flows(self, generator=None, scope_node_id: Optional[str] = None) -> FlowGenerationResult:
        """Generate flows through the flow service and merge them as one undoable edit."""
        result = await self.flow_service.generate(self.graph, generator, scope_node_id)
        self.apply(lambda g: self.flow_service.merge(g, result))
        return result

    def apply_domain_analysis(self, raw) -> DomainModelResult:
        result = self.domain_builder.build(self.graph, raw)
        self.apply(lambda g: self.domain_builder.apply(g, result))
        return result

    # --- View state ---

    def set_lens(self, lens_id: str) -> bool:
        """Switch the active lens. Lens switches are view state and bypass undo history."""
        if self.store.get_lens(self.graph, lens_id) is None:
            self.logger.warning(f"Unknown lens {lens_id}")
            return False
        self.graph = self.store.set_active_lens(self.graph, lens_id)
        return True

    def set_depth_range(self, min_depth: Optional[int] = None, max_depth: Optional[int] = None):
        if min_depth is None and max_depth is None:
            self.depth_range = None
        else:
            self.depth_range = DepthRange(min=min_depth, max=max_depth)

    @property
    def focus_node_id(self) -> Optional[str]:
        return self.focus_stack[-1] if self.focus_stack else None

    def focus_node(self, node_id: str) -> bool:
        if node_id not in self.graph.nodes:
            return False
        if node_id == self.graph.root_node_id:
            self.focus_root()
            return True
        if self.focus_node_id != node_id:
            self.focus_stack.append(node_id)
        return True

    def focus_up(self):
        if self.focus_stack:
            self.focus_stack.pop()

    def focus_root(self):
        self.focus_stack.clear()

    def navigate_breadcrumb(self, index: int):
        """Jump back to breadcrumb `index`; negative values return to the root."""
        if index < 0:
            self.focus_root()
        else:
            del self.focus_stack[index + 1:]

    @property
    def breadcrumbs(self) -> List[GraphNode]:
        return [self.graph.nodes[nid] for nid in self.focus_stack if nid in self.graph.nodes]

    def _drop_stale_focus(self):
        self.focus_stack = [nid for nid in self.focus_stack if nid in self.graph.nodes]

    # --- Read side ---

    def render(self) -> str:
        lens = self.graph.active_lens or component_lens()
        return self.renderer.render(self.graph, lens, self.focus_node_id, self.depth_range)

    def anomalies(self) -> List[Anomaly]:
        return self.detector.detect(self.graph)
