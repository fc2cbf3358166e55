"""
Validation of flow batches returned by an external narrative generator.

A batch is accepted only when at least ``flow_acceptance_ratio`` of its
entries are structurally valid; invalid entries of an accepted batch are
dropped, and a rejected batch yields no flows at all.
"""
from typing import List, Dict, Any, Optional, Set, Union
import json
import re

from ..config import settings
from ..graph.store import new_id
from ..types import FlowStep, GraphFlow
from ..utils.logger import app_logger
from .models import FlowBatchResult, FlowSummary
from .sequence import build_sequence_diagram


_FENCED = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)```")
_OBJECT = re.compile(r"\{[\s\S]*\}")
_ARRAY = re.compile(r"\[[\s\S]*\]")


def extract_json(text: str) -> str:
    """Pull the JSON payload out of fenced or chatty generator output."""
    fenced = _FENCED.search(text)
    if fenced:
        return fenced.group(1).strip()
    obj = _OBJECT.search(text)
    if obj:
        return obj.group(0)
    arr = _ARRAY.search(text)
    if arr:
        return arr.group(0)
    return text.strip()


class FlowValidator:
    """Structural validation of externally generated flows."""

    def __init__(self, acceptance_ratio: Optional[float] = None):
        self.logger = app_logger.bind(component="flow_validator")
        self.acceptance_ratio = acceptance_ratio if acceptance_ratio is not None else settings.flow_acceptance_ratio

    def _entries(self, raw: Union[str, Dict[str, Any], List[Any], None]) -> Optional[List[Any]]:
        if isinstance(raw, str):
            try:
                raw = json.loads(extract_json(raw))
            except json.JSONDecodeError as e:
                self.logger.warning(f"Generator output is not valid JSON: {e}")
                return None
        if isinstance(raw, dict) and isinstance(raw.get("flows"), list):
            return raw["flows"]
        if isinstance(raw, list):
            return raw
        return None

    def _validate_steps(self, steps: List[Any], valid_node_ids: Set[str]) -> List[FlowStep]:
        valid_steps = []
        for step in steps:
            if not isinstance(step, dict):
                continue
            node_id = step.get("nodeId", step.get("node_id"))
            if not isinstance(node_id, str) or node_id not in valid_node_ids:
                continue
            label = step.get("label")
            order = step.get("order")
            valid_steps.append(FlowStep(
                node_id=node_id,
                label=label if isinstance(label, str) and label else node_id,
                order=order if isinstance(order, int) and not isinstance(order, bool) else len(valid_steps),
            ))
        return sorted(valid_steps, key=lambda s: s.order)

    def validate_entry(self, item: Any, valid_node_ids: Set[str], root_node_id: str,
                       module_node_ids: Set[str]) -> Optional[GraphFlow]:
        """Return a GraphFlow for a structurally valid entry, otherwise None."""
        if not isinstance(item, dict):
            return None

        name = item.get("name")
        scope_node_id = item.get("scopeNodeId", item.get("scope_node_id"))
        steps = item.get("steps")

        if not isinstance(name, str) or not name:
            return None
        if not isinstance(scope_node_id, str):
            return None
        if scope_node_id != root_node_id and scope_node_id not in module_node_ids:
            return None
        if not isinstance(steps, list) or len(steps) < 2:
            return None

        valid_steps = self._validate_steps(steps, valid_node_ids)
        if len(valid_steps) < 2:
            return None

        sequence_diagram = item.get("sequenceDiagram", item.get("sequence_diagram"))
        if not isinstance(sequence_diagram, str) or not sequence_diagram.startswith("sequenceDiagram"):
            sequence_diagram = build_sequence_diagram(valid_steps)

        description = item.get("description")
        return GraphFlow(
            id=new_id(),
            name=name,
            description=description if isinstance(description, str) else "",
            scope_node_id=scope_node_id,
            steps=valid_steps,
            sequence_diagram=sequence_diagram,
        )

    def validate(self, raw: Union[str, Dict[str, Any], List[Any], None], summary: FlowSummary) -> FlowBatchResult:
        """Validate a generator batch against the digest it was produced from."""
        entries = self._entries(raw)
        if entries is None:
            return FlowBatchResult(warnings=["Generator response has no flows array"])

        valid_node_ids = set(summary.valid_node_ids())
        module_node_ids = set(summary.module_node_ids)

        flows = []
        for item in entries:
            flow = self.validate_entry(item, valid_node_ids, summary.root_node_id, module_node_ids)
            if flow is not None:
                flows.append(flow)

        total = len(entries)
        valid = len(flows)
        if valid == 0 or valid / total < self.acceptance_ratio:
            message = f"Rejected flow batch: {valid} of {total} entries passed validation"
            self.logger.warning(message)
            return FlowBatchResult(total=total, valid=valid, accepted=False, warnings=[message])

        warnings = []
        if valid < total:
            warnings.append(f"Dropped {total - valid} of {total} invalid flow entries")
        self.logger.info(f"Accepted {valid} of {total} generated flows")
        return FlowBatchResult(flows=flows, total=total, valid=valid, accepted=True, warnings=warnings)
