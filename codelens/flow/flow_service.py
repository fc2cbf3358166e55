from typing import List, Any, Awaitable, Callable, Optional

from ..config import settings
from ..graph.store import GraphStore
from ..types import CodeGraph
from ..utils.logger import app_logger
from .flow_validator import FlowValidator
from .heuristic import HeuristicFlowGenerator
from .models import FlowGenerationResult, FlowSummary
from .summary_builder import FILE_DEPTH, FlowSummaryBuilder


# External narrative generator: receives the digest and the node ids it may
# reference, returns raw flow records (JSON text, dict or list). Adapters raise
# FlowGenerationError when the backing service gives no usable answer; any
# exception counts as a failed attempt and is retried.
FlowGenerator = Callable[[FlowSummary, List[str]], Awaitable[Any]]


class FlowService:
    """Builds the flow digest, asks the external generator, validates, falls back to heuristics."""

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        summary_builder: Optional[FlowSummaryBuilder] = None,
        validator: Optional[FlowValidator] = None,
        heuristic: Optional[HeuristicFlowGenerator] = None,
        max_retries: Optional[int] = None,
    ):
        self.logger = app_logger.bind(component="flow_service")
        self.store = store or GraphStore()
        self.summary_builder = summary_builder or FlowSummaryBuilder()
        self.validator = validator or FlowValidator()
        self.heuristic = heuristic or HeuristicFlowGenerator()
        self.max_retries = max_retries if max_retries is not None else settings.max_flow_retries

    async def generate(
        self,
        graph: CodeGraph,
        generator: Optional[FlowGenerator] = None,
        scope_node_id: Optional[str] = None,
    ) -> FlowGenerationResult:
        """Generate flows for the graph, or for one module when scope_node_id is set."""
        warnings: List[str] = []

        if not any(node.depth == FILE_DEPTH for node in graph.nodes.values()):
            warnings.append("Graph has no file-level nodes, cannot generate flows")
            return FlowGenerationResult(flows=[], source="heuristic", warnings=warnings)

        summary = self.summary_builder.build(graph, scope_node_id)

        if generator is not None:
            valid_node_ids = summary.valid_node_ids()
            for attempt in range(self.max_retries + 1):
                try:
                    raw = await generator(summary, valid_node_ids)
                except Exception as e:
                    self.logger.warning(f"Flow generator attempt {attempt + 1} failed: {e}")
                    continue

                batch = self.validator.validate(raw, summary)
                if batch.accepted:
                    self.logger.info(f"Generator produced {len(batch.flows)} flows on attempt {attempt + 1}")
                    return FlowGenerationResult(
                        flows=batch.flows,
                        source="generator",
                        scope_node_id=summary.scope_node_id,
                        warnings=warnings + batch.warnings,
                    )
                self.logger.warning(f"Flow generator attempt {attempt + 1}: validation failed")

            warnings.append("Flow generation failed, using heuristic fallback")

        flows = self.heuristic.generate(graph, summary)
        if not flows:
            warnings.append("No flows could be generated from graph structure")
        return FlowGenerationResult(
            flows=flows, source="heuristic", scope_node_id=summary.scope_node_id, warnings=warnings
        )

    def merge(self, graph: CodeGraph, result: FlowGenerationResult, replace: bool = True) -> CodeGraph:
        """Merge generated flows back into the graph.

        With replace, a module-scoped result only supersedes flows of that module.
        """
        if not result.flows:
            return graph
        return self.store.merge_flows(graph, result.flows, replace=replace, scope_node_id=result.scope_node_id)
