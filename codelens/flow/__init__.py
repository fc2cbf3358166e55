"""
Flow module: structural digests for runtime-flow generation and validation of generated flows.
"""

from .models import FlowSummary, FlowBatchResult, FlowGenerationResult
from .summary_builder import FlowSummaryBuilder
from .flow_validator import FlowValidator, extract_json
from .heuristic import HeuristicFlowGenerator
from .flow_service import FlowService, FlowGenerator

__all__ = [
    'FlowSummary',
    'FlowBatchResult',
    'FlowGenerationResult',
    'FlowSummaryBuilder',
    'FlowValidator',
    'extract_json',
    'HeuristicFlowGenerator',
    'FlowService',
    'FlowGenerator'
]
