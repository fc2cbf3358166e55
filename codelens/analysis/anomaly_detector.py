from typing import List, Dict, Optional, Set, Tuple

from ..config import settings
from ..types import Anomaly, AnomalyType, CodeGraph, GraphRelation, RelationType, Severity
from ..utils.logger import app_logger


class AnomalyDetector:
    """Read-only structural validation over a whole graph, independent of lenses."""

    def __init__(self, high_coupling_threshold: Optional[int] = None, god_node_threshold: Optional[int] = None):
        self.logger = app_logger.bind(component="anomaly_detector")
        self.high_coupling_threshold = (
            high_coupling_threshold if high_coupling_threshold is not None else settings.high_coupling_threshold
        )
        self.god_node_threshold = god_node_threshold if god_node_threshold is not None else settings.god_node_threshold

    def detect(self, graph: CodeGraph) -> List[Anomaly]:
        """Run every check and return the findings in check order."""
        anomalies = []
        anomalies.extend(self.find_orphans(graph))
        anomalies.extend(self.find_broken_references(graph))
        anomalies.extend(self.find_cycles(graph))
        anomalies.extend(self.find_high_coupling(graph))
        anomalies.extend(self.find_god_nodes(graph))

        if anomalies:
            self.logger.info(f"Found {len(anomalies)} anomalies in graph {graph.id}")
        return anomalies

    def _dependency_relations(self, graph: CodeGraph) -> List[GraphRelation]:
        return [rel for rel in graph.relations.values() if rel.type != RelationType.CONTAINS]

    def _name(self, graph: CodeGraph, node_id: str) -> str:
        node = graph.nodes.get(node_id)
        return node.name if node else node_id

    def find_orphans(self, graph: CodeGraph) -> List[Anomaly]:
        anomalies = []
        for node in graph.nodes.values():
            if node.id == graph.root_node_id:
                continue
            if not node.parent_id or node.parent_id not in graph.nodes:
                anomalies.append(Anomaly(
                    type=AnomalyType.ORPHAN_NODE,
                    severity=Severity.WARNING,
                    message=f'Node "{node.name}" has no valid parent',
                    node_ids=[node.id],
                ))
        return anomalies

    def find_broken_references(self, graph: CodeGraph) -> List[Anomaly]:
        anomalies = []
        for rel in graph.relations.values():
            missing = [nid for nid in (rel.source_id, rel.target_id) if nid not in graph.nodes]
            if missing:
                anomalies.append(Anomaly(
                    type=AnomalyType.BROKEN_REFERENCE,
                    severity=Severity.ERROR,
                    message=f'Relation "{rel.type.value}" references missing node(s)',
                    node_ids=list(dict.fromkeys(missing)),
                    relation_ids=[rel.id],
                ))
        return anomalies

    def find_cycles(self, graph: CodeGraph) -> List[Anomaly]:
        """Depth-first search over non-contains relations with an explicit recursion stack.

        A back edge to a node on the stack closes a cycle: the stack slice from
        that node's first occurrence. Each cycle is reported once, whatever
        node it was entered from.
        """
        adjacency: Dict[str, List[str]] = {}
        for rel in self._dependency_relations(graph):
            if rel.source_id in graph.nodes and rel.target_id in graph.nodes:
                adjacency.setdefault(rel.source_id, []).append(rel.target_id)

        anomalies = []
        visited: Set[str] = set()
        reported: Set[Tuple[str, ...]] = set()

        for start in graph.nodes:
            if start in visited:
                continue
            visited.add(start)
            path = [start]
            on_stack = {start}
            pending = [iter(adjacency.get(start, []))]

            while pending:
                nxt = next(pending[-1], None)
                if nxt is None:
                    pending.pop()
                    on_stack.discard(path.pop())
                    continue

                if nxt in on_stack:
                    cycle = path[path.index(nxt):]
                    pivot = cycle.index(min(cycle))
                    key = tuple(cycle[pivot:] + cycle[:pivot])
                    if key not in reported:
                        reported.add(key)
                        names = [self._name(graph, nid) for nid in cycle]
                        anomalies.append(Anomaly(
                            type=AnomalyType.CIRCULAR_DEPENDENCY,
                            severity=Severity.WARNING,
                            message=f"Circular dependency: {' -> '.join(names + names[:1])}",
                            node_ids=list(cycle),
                        ))
                    continue
                if nxt in visited:
                    continue

                visited.add(nxt)
                on_stack.add(nxt)
                path.append(nxt)
                pending.append(iter(adjacency.get(nxt, [])))

        return anomalies

    def _count(self, graph: CodeGraph, attr: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for rel in self._dependency_relations(graph):
            node_id = getattr(rel, attr)
            counts[node_id] = counts.get(node_id, 0) + 1
        return counts

    def find_high_coupling(self, graph: CodeGraph) -> List[Anomaly]:
        fan_out = self._count(graph, "source_id")
        anomalies = []
        for node in graph.nodes.values():
            count = fan_out.get(node.id, 0)
            if count > self.high_coupling_threshold:
                anomalies.append(Anomaly(
                    type=AnomalyType.HIGH_COUPLING,
                    severity=Severity.WARNING,
                    message=f'Node "{node.name}" has high fan-out ({count} dependencies)',
                    node_ids=[node.id],
                ))
        return anomalies

    def find_god_nodes(self, graph: CodeGraph) -> List[Anomaly]:
        fan_in = self._count(graph, "target_id")
        anomalies = []
        for node in graph.nodes.values():
            count = fan_in.get(node.id, 0)
            if count > self.god_node_threshold:
                anomalies.append(Anomaly(
                    type=AnomalyType.GOD_NODE,
                    severity=Severity.WARNING,
                    message=f'Node "{node.name}" has high fan-in ({count} dependents), potential god node',
                    node_ids=[node.id],
                ))
        return anomalies
