"""
Built-in lenses attached to every new graph.
"""
from typing import List

from ..types import (
    LensType, NodeFilter, NodeKind, NodeShape, RelationFilter, RelationType,
    StyleMatch, StyleRule, ViewLens,
)


COMPONENT_LENS_ID = "lens-component"
FLOW_LENS_ID = "lens-flow"
DOMAIN_LENS_ID = "lens-domain"


def _rule(kinds: List[NodeKind], shape: NodeShape, style: str) -> StyleRule:
    return StyleRule(match=StyleMatch(kinds=kinds), shape=shape, style=style)


def component_lens() -> ViewLens:
    """Structural view: packages, modules and types with their static dependencies."""
    return ViewLens(
        id=COMPONENT_LENS_ID,
        name="Component",
        type=LensType.COMPONENT,
        node_filter=NodeFilter(
            kinds=[NodeKind.SYSTEM, NodeKind.PACKAGE, NodeKind.MODULE, NodeKind.CLASS, NodeKind.INTERFACE],
            min_depth=0,
            max_depth=3,
        ),
        relation_filter=RelationFilter(
            types=[RelationType.CONTAINS, RelationType.DEPENDS_ON, RelationType.IMPLEMENTS, RelationType.INHERITS],
        ),
        style_rules=[
            _rule([NodeKind.SYSTEM], NodeShape.ROUNDED, "fill:#1e3a5f,stroke:#3b82f6,color:#93c5fd"),
            _rule([NodeKind.PACKAGE], NodeShape.ROUNDED, "fill:#1e3a2f,stroke:#22c55e,color:#86efac"),
            _rule([NodeKind.MODULE], NodeShape.DEFAULT, "fill:#2d2d3d,stroke:#8b5cf6,color:#c4b5fd"),
            _rule([NodeKind.CLASS, NodeKind.INTERFACE], NodeShape.STADIUM, "fill:#3d2d2d,stroke:#f97316,color:#fdba74"),
        ],
        layout_hint="TD",
    )


def flow_lens() -> ViewLens:
    """Runtime view: calls, events and dependencies between executable units."""
    return ViewLens(
        id=FLOW_LENS_ID,
        name="Flow",
        type=LensType.FLOW,
        node_filter=NodeFilter(
            kinds=[NodeKind.PACKAGE, NodeKind.MODULE, NodeKind.CLASS, NodeKind.FUNCTION],
            min_depth=1,
            max_depth=3,
        ),
        relation_filter=RelationFilter(
            types=[RelationType.CALLS, RelationType.EMITS, RelationType.SUBSCRIBES, RelationType.DEPENDS_ON],
        ),
        style_rules=[
            _rule([NodeKind.FUNCTION], NodeShape.STADIUM, "fill:#1e3a5f,stroke:#3b82f6,color:#93c5fd"),
            _rule([NodeKind.CLASS], NodeShape.ROUNDED, "fill:#3d2d2d,stroke:#f97316,color:#fdba74"),
        ],
        layout_hint="LR",
    )


def domain_lens() -> ViewLens:
    """Business view, rendered from the domain model rather than the code tree."""
    return ViewLens(
        id=DOMAIN_LENS_ID,
        name="Domain",
        type=LensType.DOMAIN,
        node_filter=NodeFilter(min_depth=0, max_depth=4),
        relation_filter=RelationFilter(),
        style_rules=[
            _rule([NodeKind.SYSTEM], NodeShape.ROUNDED, "fill:#1e3a5f,stroke:#60a5fa,color:#93c5fd"),
        ],
        layout_hint="TD",
    )


def get_default_lenses() -> List[ViewLens]:
    return [component_lens(), flow_lens(), domain_lens()]
