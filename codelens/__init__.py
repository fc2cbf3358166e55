"""
codelens: a hierarchical code graph with lens-filtered Mermaid views,
structural anomaly detection and runtime flow digests.
"""

from .types import CodeGraph, GraphNode, GraphRelation, ViewLens, NodeKind, RelationType
from .graph.store import GraphStore
from .lens.engine import LensEngine
from .render.mermaid_renderer import MermaidRenderer
from .analysis.anomaly_detector import AnomalyDetector
from .flow.summary_builder import FlowSummaryBuilder
from .session import GraphSession

__version__ = "0.1.0"

__all__ = [
    'CodeGraph',
    'GraphNode',
    'GraphRelation',
    'ViewLens',
    'NodeKind',
    'RelationType',
    'GraphStore',
    'LensEngine',
    'MermaidRenderer',
    'AnomalyDetector',
    'FlowSummaryBuilder',
    'GraphSession',
]
