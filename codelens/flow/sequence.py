from typing import List, Optional, Sequence
import re

from ..render.mermaid_renderer import sanitize_id
from ..types import FlowStep


_EXTENSION = re.compile(r"\.[A-Za-z0-9]+$")


def participant_name(label: str) -> str:
    """Short display name for a participant: single line, file extension dropped."""
    return _EXTENSION.sub("", " ".join(label.split()))


def build_sequence_diagram(steps: Sequence[FlowStep], edge_labels: Optional[List[str]] = None,
                           default_label: str = "calls") -> str:
    """Basic sequence diagram walking the steps in order."""
    lines = ["sequenceDiagram"]
    declared = set()
    for step in steps:
        pid = sanitize_id(step.node_id)
        if pid in declared:
            continue
        declared.add(pid)
        lines.append(f"  participant {pid} as {participant_name(step.label)}")

    edge_labels = edge_labels or []
    for i in range(len(steps) - 1):
        label = edge_labels[i] if i < len(edge_labels) and edge_labels[i] else default_label
        lines.append(f"  {sanitize_id(steps[i].node_id)}->>{sanitize_id(steps[i + 1].node_id)}: {label}")
    return "\n".join(lines)
