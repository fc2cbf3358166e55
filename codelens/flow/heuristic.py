from typing import List, Dict, Optional, Tuple

from ..config import settings
from ..graph.store import new_id
from ..types import CodeGraph, FlowStep, GraphFlow
from ..utils.logger import app_logger
from .models import FileSymbol, FlowSummary
from .sequence import build_sequence_diagram


class _Chain:
    def __init__(self, nodes: List[str], modules: List[str], edge_labels: List[str]):
        self.nodes = nodes
        self.modules = modules
        self.edge_labels = edge_labels


class HeuristicFlowGenerator:
    """Fallback flow generation: walks file dependencies outward from each entry point."""

    def __init__(
        self,
        max_depth: Optional[int] = None,
        min_length: Optional[int] = None,
        overlap_ratio: Optional[float] = None,
    ):
        self.logger = app_logger.bind(component="heuristic_flows")
        self.max_depth = max_depth if max_depth is not None else settings.heuristic_max_chain_depth
        self.min_length = min_length if min_length is not None else settings.heuristic_min_chain_length
        self.overlap_ratio = overlap_ratio if overlap_ratio is not None else settings.heuristic_overlap_ratio

    def _walk(self, start: str, adjacency: Dict[str, List[Tuple[str, str]]]) -> Tuple[List[str], List[str]]:
        """Depth-first chain from start; edge_labels[i] labels the edge into nodes[i + 1]."""
        nodes: List[str] = []
        labels: List[str] = []
        visited = set()
        stack: List[Tuple[str, int, Optional[str]]] = [(start, 0, None)]
        while stack:
            node_id, depth, label = stack.pop()
            if node_id in visited or depth > self.max_depth:
                continue
            visited.add(node_id)
            nodes.append(node_id)
            if label is not None:
                labels.append(label)
            for target, edge_label in reversed(adjacency.get(node_id, [])):
                if target not in visited:
                    stack.append((target, depth + 1, edge_label))
        return nodes, labels

    def _dedupe(self, chains: List[_Chain]) -> List[_Chain]:
        kept: List[_Chain] = []
        for chain in chains:
            duplicate = False
            for existing in kept:
                existing_set = set(existing.nodes)
                overlap = sum(1 for n in chain.nodes if n in existing_set)
                if overlap / max(len(chain.nodes), len(existing.nodes)) > self.overlap_ratio:
                    if len(chain.nodes) > len(existing.nodes):
                        existing.nodes = chain.nodes
                        existing.modules = chain.modules
                        existing.edge_labels = chain.edge_labels
                    duplicate = True
                    break
            if not duplicate:
                kept.append(chain)
        return kept

    def generate(self, graph: CodeGraph, summary: FlowSummary) -> List[GraphFlow]:
        adjacency: Dict[str, List[Tuple[str, str]]] = {}
        for edge in summary.file_edges:
            adjacency.setdefault(edge.source_id, []).append((edge.target_id, edge.label))

        node_to_module: Dict[str, str] = {}
        file_symbols: Dict[str, List[FileSymbol]] = {}
        for module in summary.modules:
            for f in module.files:
                node_to_module[f.node_id] = module.node_id
                file_symbols[f.node_id] = f.symbols

        chains = []
        for entry in summary.entry_points:
            nodes, labels = self._walk(entry.node_id, adjacency)
            if len(nodes) < self.min_length:
                continue
            modules = list(dict.fromkeys(node_to_module[n] for n in nodes if n in node_to_module))
            chains.append(_Chain(nodes, modules, labels))

        def name_of(node_id: str) -> str:
            node = graph.nodes.get(node_id)
            return node.name if node else node_id

        def main_symbol(node_id: str) -> Optional[FileSymbol]:
            for symbol in file_symbols.get(node_id, []):
                if symbol.kind in ("function", "class"):
                    return symbol
            return None

        flows = []
        for chain in self._dedupe(chains):
            root_level = len(chain.modules) > 1
            scope_node_id = summary.root_node_id if root_level or not chain.modules else chain.modules[0]

            first, last = name_of(chain.nodes[0]), name_of(chain.nodes[-1])
            lead = main_symbol(chain.nodes[0])
            if root_level:
                name = f"{lead.name} ({first} -> {last})" if lead else f"{first} -> {last}"
            else:
                name = f"{lead.name} flow" if lead else f"{first} chain"

            steps = []
            for i, node_id in enumerate(chain.nodes):
                symbol = main_symbol(node_id)
                label = f"{symbol.name} ({name_of(node_id)})" if symbol else name_of(node_id)
                steps.append(FlowStep(node_id=node_id, label=label, order=i))

            kind = "Cross-module" if root_level else "Module-level"
            symbol_names = [s.name for n in chain.nodes for s in file_symbols.get(n, [])][:5]
            if symbol_names:
                description = f"{kind} flow involving {', '.join(symbol_names)}"
            else:
                description = f"{kind} flow: {len(steps)} steps"

            flows.append(GraphFlow(
                id=new_id(),
                name=name,
                description=description,
                scope_node_id=scope_node_id,
                steps=steps,
                sequence_diagram=build_sequence_diagram(steps, chain.edge_labels, default_label="depends_on"),
            ))

        self.logger.debug(f"Heuristic generation produced {len(flows)} flows from {len(chains)} chains")
        return flows
