"""
Compiles a lens-filtered code graph into Mermaid flowchart text.

Containment is expressed as nested ``subgraph`` blocks, every other relation
as an edge. Output is deterministic: traversal follows stored child order and
relation insertion order, so identical inputs give byte-identical text.
"""
from typing import List, Dict, Optional, Callable, Sequence, Set, Tuple, TypeVar
import re

from ..config import settings
from ..lens.engine import LensEngine
from ..types import (
    CodeGraph, GraphNode, ViewLens, StyleRule, NodeShape, LensType,
    RelationType, DomainRelationType, DepthRange,
)
from ..utils.logger import app_logger


RELATION_ARROWS: Dict[RelationType, str] = {
    RelationType.CONTAINS: "-->",
    RelationType.DEPENDS_ON: "-->",
    RelationType.IMPLEMENTS: "-.->",
    RelationType.INHERITS: "-->",
    RelationType.CALLS: "-->",
    RelationType.EMITS: "==>",
    RelationType.SUBSCRIBES: "-.->",
    RelationType.READS: "-->",
    RelationType.WRITES: "-->",
}

RELATION_LABELS: Dict[RelationType, str] = {
    RelationType.IMPLEMENTS: "implements",
    RelationType.INHERITS: "extends",
    RelationType.CALLS: "calls",
    RelationType.EMITS: "emits",
    RelationType.SUBSCRIBES: "subscribes",
    RelationType.READS: "reads",
    RelationType.WRITES: "writes",
}

DOMAIN_ARROWS: Dict[DomainRelationType, str] = {
    DomainRelationType.OWNS: "-->",
    DomainRelationType.TRIGGERS: "-->",
    DomainRelationType.REQUIRES: "-.->",
    DomainRelationType.PRODUCES: "==>",
    DomainRelationType.CONSUMES: "-.->",
}

DOMAIN_NODE_STYLE = "fill:#1e3a5f,stroke:#60a5fa,color:#93c5fd"

EMPTY_VIEW_LABEL = "No nodes match the current view"
EMPTY_DOMAIN_LABEL = "No domain model defined yet"

# Words Mermaid's flowchart grammar treats as keywords when used as an id
RESERVED_IDS = {"end", "graph", "subgraph", "flowchart", "style", "class", "classdef", "click", "linkstyle", "direction", "default"}

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_]")

T = TypeVar("T")


def sanitize_id(node_id: str) -> str:
    """Restrict an identifier to [A-Za-z0-9_]."""
    sid = _UNSAFE_ID_CHARS.sub("_", node_id)
    if not sid or sid.lower() in RESERVED_IDS:
        sid = f"n_{sid}"
    return sid


def sanitize_label(label: str) -> str:
    """Escape quotes, which delimit label text in Mermaid."""
    return label.replace('"', "#quot;")


def find_matching_rule(node: GraphNode, rules: Sequence[StyleRule]) -> Optional[StyleRule]:
    """First rule whose match criteria accept the node."""
    for rule in rules:
        if rule.match.matches(node):
            return rule
    return None


def wrap_in_shape(node_id: str, label: str, shape: Optional[NodeShape] = None) -> str:
    sid = sanitize_id(node_id)
    slabel = sanitize_label(label)

    if shape == NodeShape.ROUNDED:
        return f'{sid}("{slabel}")'
    if shape == NodeShape.STADIUM:
        return f'{sid}(["{slabel}"])'
    if shape == NodeShape.CYLINDER:
        return f'{sid}[("{slabel}")]'
    if shape == NodeShape.HEXAGON:
        return f'{sid}{{{{"{slabel}"}}}}'
    if shape == NodeShape.TRAPEZOID:
        return f'{sid}[/"{slabel}"\\]'
    if shape == NodeShape.CIRCLE:
        return f'{sid}(("{slabel}"))'
    if shape == NodeShape.DIAMOND:
        return f'{sid}{{"{slabel}"}}'
    return f'{sid}["{slabel}"]'


def emit_nested(
    lines: List[str],
    ordered: Sequence[T],
    children_of: Dict[str, List[T]],
    get_id: Callable[[T], str],
    get_label: Callable[[T], str],
    declare: Callable[[T], str],
) -> List[T]:
    """Emit nested subgraph blocks for a forest, returning items in emission order.

    Uses an explicit stack so deep trees do not hit the recursion limit.
    Items not reached from a root (broken parent links) are emitted as extra roots.
    """
    child_ids = {get_id(child) for kids in children_of.values() for child in kids}
    done: Set[str] = set()
    emitted: List[T] = []

    def walk(root: T):
        stack: List[Tuple[T, int, bool]] = [(root, 1, False)]
        while stack:
            item, level, closing = stack.pop()
            indent = "  " * level
            if closing:
                lines.append(f"{indent}end")
                continue
            item_id = get_id(item)
            if item_id in done:
                continue
            done.add(item_id)
            emitted.append(item)

            kids = [kid for kid in children_of.get(item_id, []) if get_id(kid) not in done]
            if kids:
                lines.append(f'{indent}subgraph {sanitize_id(item_id)}["{sanitize_label(get_label(item))}"]')
                stack.append((item, level, True))
                for kid in reversed(kids):
                    stack.append((kid, level + 1, False))
            else:
                lines.append(f"{indent}{declare(item)}")

    for item in ordered:
        if get_id(item) not in child_ids:
            walk(item)
    for item in ordered:
        if get_id(item) not in done:
            walk(item)
    return emitted


class MermaidRenderer:
    """Renders graph views as Mermaid flowchart text."""

    def __init__(self, lens_engine: Optional[LensEngine] = None):
        self.logger = app_logger.bind(component="mermaid_renderer")
        self.lens_engine = lens_engine or LensEngine()

    def _resolve_style(self, node: GraphNode, lens: ViewLens) -> Tuple[Optional[NodeShape], Optional[str]]:
        rule = find_matching_rule(node, lens.style_rules)
        shape = rule.shape if rule else None
        style = rule.style if rule else None

        override = node.lens_config.get(lens.id)
        if override is not None:
            shape = override.shape or shape
            style = override.style or style
        return shape, style

    def render(
        self,
        graph: CodeGraph,
        lens: ViewLens,
        focus_node_id: Optional[str] = None,
        depth_range: Optional[DepthRange] = None,
    ) -> str:
        """Render the graph as seen through a lens, optionally focused on one node."""
        if lens.type == LensType.DOMAIN:
            return self.render_domain_view(graph, lens.layout_hint)

        visible_nodes = self.lens_engine.get_visible_nodes(graph, lens, focus_node_id, depth_range)
        lines = [f"flowchart {lens.layout_hint}"]

        if not visible_nodes:
            self.logger.debug(f"Lens {lens.id} admits no nodes of graph {graph.id}, rendering placeholder")
            lines.append(f'  empty["{EMPTY_VIEW_LABEL}"]')
            return "\n".join(lines)

        visible_ids = {node.id for node in visible_nodes}
        relations = [
            rel for rel in self.lens_engine.get_visible_relations(graph, lens, visible_ids)
            if rel.type != RelationType.CONTAINS
        ]

        children_of: Dict[str, List[GraphNode]] = {}
        for node in visible_nodes:
            kids = [graph.nodes[cid] for cid in node.children if cid in visible_ids]
            if kids:
                children_of[node.id] = kids

        styles: Dict[str, Tuple[Optional[NodeShape], Optional[str]]] = {
            node.id: self._resolve_style(node, lens) for node in visible_nodes
        }

        emitted = emit_nested(
            lines,
            visible_nodes,
            children_of,
            get_id=lambda n: n.id,
            get_label=lambda n: n.name,
            declare=lambda n: wrap_in_shape(n.id, n.name, styles[n.id][0]),
        )

        for rel in relations:
            arrow = RELATION_ARROWS.get(rel.type, "-->")
            label = rel.label or RELATION_LABELS.get(rel.type, "")
            sid = sanitize_id(rel.source_id)
            tid = sanitize_id(rel.target_id)
            if label:
                lines.append(f'  {sid}{arrow}|"{sanitize_label(label)}"|{tid}')
            else:
                lines.append(f"  {sid}{arrow}{tid}")

        # Styles go last so nodes declared deep inside subgraphs can still be styled
        for node in emitted:
            style = styles[node.id][1]
            if style:
                lines.append(f"  style {sanitize_id(node.id)} {style}")

        return "\n".join(lines)

    def render_active(self, graph: CodeGraph, focus_node_id: Optional[str] = None,
                      depth_range: Optional[DepthRange] = None) -> Optional[str]:
        """Render through the graph's active lens, or None when it has none."""
        lens = graph.active_lens
        if lens is None:
            return None
        return self.render(graph, lens, focus_node_id, depth_range)

    def render_domain_view(self, graph: CodeGraph, layout_hint: Optional[str] = None) -> str:
        """Render the domain model independently of the technical tree."""
        layout_hint = layout_hint or settings.default_layout
        domain_nodes = self.lens_engine.get_visible_domain_nodes(graph)
        lines = [f"flowchart {layout_hint}"]

        if not domain_nodes:
            lines.append(f'  empty["{EMPTY_DOMAIN_LABEL}"]')
            return "\n".join(lines)

        children_of = {}
        for dnode in domain_nodes:
            kids = [graph.domain_nodes[cid] for cid in dnode.children if cid in graph.domain_nodes]
            if kids:
                children_of[dnode.id] = kids

        def declare(dnode) -> str:
            count = len(dnode.projections)
            label = dnode.name
            if count:
                label = f"{dnode.name}<br/>({count} component{'s' if count != 1 else ''})"
            return f'{sanitize_id(dnode.id)}("{sanitize_label(label)}")'

        emitted = emit_nested(
            lines,
            domain_nodes,
            children_of,
            get_id=lambda d: d.id,
            get_label=lambda d: d.name,
            declare=declare,
        )

        for rel in graph.domain_relations.values():
            if rel.source_id not in graph.domain_nodes or rel.target_id not in graph.domain_nodes:
                continue
            arrow = DOMAIN_ARROWS.get(rel.type, "-->")
            label = rel.label or rel.type.value
            lines.append(f'  {sanitize_id(rel.source_id)}{arrow}|"{sanitize_label(label)}"|{sanitize_id(rel.target_id)}')

        for dnode in emitted:
            lines.append(f"  style {sanitize_id(dnode.id)} {DOMAIN_NODE_STYLE}")

        return "\n".join(lines)
