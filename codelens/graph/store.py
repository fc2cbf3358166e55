from typing import List, Dict, Any, Optional, Iterable, Sequence, Tuple, Set
import time
import uuid

from ..types import (
    CodeGraph, GraphNode, GraphRelation, ViewLens, NodeKind, RelationType,
    SourceRef, LensOverride, NodeShape, SyncLockEntry, SyncStatus, GraphFlow,
    FlowStep, DomainNode, DomainRelation, DomainProjection, DomainRelationType,
    ProjectionRole, MAX_DEPTH,
)
from ..utils.logger import app_logger
from .lenses import get_default_lenses


def new_id() -> str:
    """Generate a globally unique id."""
    return str(uuid.uuid4())


class GraphStore:
    """Invariant-preserving mutations over immutable CodeGraph values.

    Every mutation returns a new graph. Unknown ids are treated as no-ops so
    transiently inconsistent graphs never make an edit fail.
    """

    def __init__(self):
        self.logger = app_logger.bind(component="graph_store")

    def _touch(self, graph: CodeGraph, **update) -> CodeGraph:
        update["updated_at"] = time.time()
        return graph.model_copy(update=update)

    # --- Graph creation ---

    def create_empty_graph(self, owner_id: str, name: str) -> CodeGraph:
        """Create a graph holding a single system root and the built-in lenses."""
        lenses = get_default_lenses()
        root_id = new_id()
        root = GraphNode(id=root_id, name=name, kind=NodeKind.SYSTEM, depth=0, parent_id=None)
        now = time.time()

        graph = CodeGraph(
            id=new_id(),
            name=name,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            nodes={root_id: root},
            lenses=lenses,
            active_lens_id=lenses[0].id,
            root_node_id=root_id,
        )
        self.logger.debug(f"Created graph {graph.id} ({name}) for {owner_id}")
        return graph

    # --- Node CRUD ---

    def add_node(
        self,
        graph: CodeGraph,
        name: str,
        kind: NodeKind,
        parent_id: Optional[str] = None,
        depth: Optional[int] = None,
        source_ref: Optional[SourceRef] = None,
        tags: Optional[Iterable[str]] = None,
        description: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> Tuple[CodeGraph, str]:
        """Add a node under parent_id and return (graph, node_id).

        No `contains` relation is created; the tree and the relation set are
        maintained separately.
        """
        if node_id is None or node_id in graph.nodes:
            if node_id is not None:
                self.logger.warning(f"Node id {node_id} already in use, assigning a fresh id")
            node_id = new_id()

        parent = graph.nodes.get(parent_id) if parent_id else None
        if depth is None:
            depth = parent.depth + 1 if parent else 0
        depth = max(0, min(depth, MAX_DEPTH))

        node = GraphNode(
            id=node_id,
            name=name,
            kind=kind,
            depth=depth,
            parent_id=parent_id,
            source_ref=source_ref,
            tags=list(dict.fromkeys(tags or [])),
            description=description,
        )

        nodes = dict(graph.nodes)
        nodes[node_id] = node
        if parent is not None:
            nodes[parent_id] = parent.model_copy(update={"children": [*parent.children, node_id]})
        elif parent_id:
            self.logger.debug(f"Parent {parent_id} not found, node {node_id} added without a parent link")

        return self._touch(graph, nodes=nodes), node_id

    def _update_node(self, graph: CodeGraph, node_id: str, **update) -> CodeGraph:
        node = graph.nodes.get(node_id)
        if node is None:
            return graph
        nodes = dict(graph.nodes)
        nodes[node_id] = node.model_copy(update=update)
        return self._touch(graph, nodes=nodes)

    def rename_node(self, graph: CodeGraph, node_id: str, name: str) -> CodeGraph:
        return self._update_node(graph, node_id, name=name)

    def set_node_tags(self, graph: CodeGraph, node_id: str, tags: Iterable[str]) -> CodeGraph:
        return self._update_node(graph, node_id, tags=list(dict.fromkeys(tags)))

    def set_node_lens_override(
        self,
        graph: CodeGraph,
        node_id: str,
        lens_id: str,
        visible: Optional[bool] = None,
        shape: Optional[NodeShape] = None,
        style: Optional[str] = None,
    ) -> CodeGraph:
        """Set or clear a node's visual override for one lens."""
        node = graph.nodes.get(node_id)
        if node is None:
            return graph
        lens_config = dict(node.lens_config)
        if visible is None and shape is None and style is None:
            lens_config.pop(lens_id, None)
        else:
            lens_config[lens_id] = LensOverride(visible=visible, shape=shape, style=style)
        return self._update_node(graph, node_id, lens_config=lens_config)

    def remove_node(self, graph: CodeGraph, node_id: str) -> CodeGraph:
        """Remove a node, its whole subtree and everything that references them.

        Root removal is not refused here; that policy belongs to the caller.
        """
        node = graph.nodes.get(node_id)
        if node is None:
            return graph

        to_remove = {node_id} | {d.id for d in self.get_descendants(graph, node_id)}

        nodes = {nid: n for nid, n in graph.nodes.items() if nid not in to_remove}
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            nodes[parent.id] = parent.model_copy(
                update={"children": [c for c in parent.children if c != node_id]}
            )

        relations = {
            rid: rel for rid, rel in graph.relations.items()
            if rel.source_id not in to_remove and rel.target_id not in to_remove
        }
        sync_lock = {nid: entry for nid, entry in graph.sync_lock.items() if nid not in to_remove}
        domain_nodes = self._strip_projections(graph.domain_nodes, to_remove)
        flows = self._prune_flows(graph.flows, to_remove)

        self.logger.debug(
            f"Removed {len(to_remove)} nodes and "
            f"{len(graph.relations) - len(relations)} relations from graph {graph.id}"
        )
        return self._touch(
            graph,
            nodes=nodes,
            relations=relations,
            sync_lock=sync_lock,
            domain_nodes=domain_nodes,
            flows=flows,
        )

    def _strip_projections(self, domain_nodes: Dict[str, DomainNode], removed: Set[str]) -> Dict[str, DomainNode]:
        result = {}
        for did, dnode in domain_nodes.items():
            kept = [p for p in dnode.projections if p.graph_node_id not in removed]
            result[did] = dnode if len(kept) == len(dnode.projections) else dnode.model_copy(update={"projections": kept})
        return result

    def _prune_flows(self, flows: Dict[str, GraphFlow], removed: Set[str]) -> Dict[str, GraphFlow]:
        result = {}
        for fid, flow in flows.items():
            if flow.scope_node_id in removed:
                continue
            steps = [s for s in flow.steps if s.node_id not in removed]
            if len(steps) < 2:
                continue
            result[fid] = flow if len(steps) == len(flow.steps) else flow.model_copy(update={"steps": steps})
        return result

    # --- Relation CRUD ---

    def add_relation(
        self,
        graph: CodeGraph,
        source_id: str,
        target_id: str,
        type: RelationType,
        label: Optional[str] = None,
    ) -> Tuple[CodeGraph, str]:
        """Create a relation visible in every lens currently on the graph."""
        if source_id not in graph.nodes or target_id not in graph.nodes:
            self.logger.warning(
                f"Relation {source_id} -[{type.value}]-> {target_id} references a missing node; "
                "it stays hidden from views until both endpoints exist"
            )

        relation_id = new_id()
        relation = GraphRelation(
            id=relation_id,
            source_id=source_id,
            target_id=target_id,
            type=type,
            label=label,
            lens_visibility={lens.id: True for lens in graph.lenses},
        )
        relations = dict(graph.relations)
        relations[relation_id] = relation
        return self._touch(graph, relations=relations), relation_id

    def remove_relation(self, graph: CodeGraph, relation_id: str) -> CodeGraph:
        if relation_id not in graph.relations:
            return graph
        relations = {rid: rel for rid, rel in graph.relations.items() if rid != relation_id}
        return self._touch(graph, relations=relations)

    def set_relation_visibility(self, graph: CodeGraph, relation_id: str, lens_id: str, visible: bool) -> CodeGraph:
        relation = graph.relations.get(relation_id)
        if relation is None:
            return graph
        relations = dict(graph.relations)
        relations[relation_id] = relation.model_copy(
            update={"lens_visibility": {**relation.lens_visibility, lens_id: visible}}
        )
        return self._touch(graph, relations=relations)

    # --- Lenses ---

    def get_lens(self, graph: CodeGraph, lens_id: str) -> Optional[ViewLens]:
        for lens in graph.lenses:
            if lens.id == lens_id:
                return lens
        return None

    def add_lens(self, graph: CodeGraph, lens: ViewLens) -> CodeGraph:
        """Attach a lens, replacing one with the same id.

        Relations that have no visibility flag for this lens default to visible.
        """
        replaced = False
        lenses = []
        for existing in graph.lenses:
            if existing.id == lens.id:
                lenses.append(lens)
                replaced = True
            else:
                lenses.append(existing)
        if not replaced:
            lenses.append(lens)

        relations = {}
        for rid, rel in graph.relations.items():
            if lens.id in rel.lens_visibility:
                relations[rid] = rel
            else:
                relations[rid] = rel.model_copy(update={"lens_visibility": {**rel.lens_visibility, lens.id: True}})

        active_lens_id = graph.active_lens_id or lens.id
        return self._touch(graph, lenses=lenses, relations=relations, active_lens_id=active_lens_id)

    def remove_lens(self, graph: CodeGraph, lens_id: str) -> CodeGraph:
        if self.get_lens(graph, lens_id) is None:
            return graph
        lenses = [lens for lens in graph.lenses if lens.id != lens_id]

        relations = {}
        for rid, rel in graph.relations.items():
            if lens_id in rel.lens_visibility:
                visibility = {k: v for k, v in rel.lens_visibility.items() if k != lens_id}
                rel = rel.model_copy(update={"lens_visibility": visibility})
            relations[rid] = rel

        nodes = {}
        for nid, node in graph.nodes.items():
            if lens_id in node.lens_config:
                config = {k: v for k, v in node.lens_config.items() if k != lens_id}
                node = node.model_copy(update={"lens_config": config})
            nodes[nid] = node

        active_lens_id = graph.active_lens_id
        if active_lens_id == lens_id:
            active_lens_id = lenses[0].id if lenses else None

        return self._touch(graph, lenses=lenses, relations=relations, nodes=nodes, active_lens_id=active_lens_id)

    def set_active_lens(self, graph: CodeGraph, lens_id: str) -> CodeGraph:
        if self.get_lens(graph, lens_id) is None:
            self.logger.warning(f"Lens {lens_id} not found on graph {graph.id}")
            return graph
        return self._touch(graph, active_lens_id=lens_id)

    # --- Tree traversal ---

    def get_children(self, graph: CodeGraph, node_id: str) -> List[GraphNode]:
        node = graph.nodes.get(node_id)
        if node is None:
            return []
        return [graph.nodes[cid] for cid in node.children if cid in graph.nodes]

    def get_descendants(self, graph: CodeGraph, node_id: str) -> List[GraphNode]:
        """Pre-order traversal over stored child order."""
        node = graph.nodes.get(node_id)
        if node is None:
            return []

        result = []
        seen = {node_id}
        stack = list(reversed(node.children))
        while stack:
            current_id = stack.pop()
            current = graph.nodes.get(current_id)
            if current is None or current_id in seen:
                continue
            seen.add(current_id)
            result.append(current)
            stack.extend(reversed(current.children))
        return result

    def get_ancestors(self, graph: CodeGraph, node_id: str) -> List[GraphNode]:
        """Walk parent links up to the root, nearest ancestor first."""
        result = []
        seen = {node_id}
        current = graph.nodes.get(node_id)
        while current is not None and current.parent_id:
            parent = graph.nodes.get(current.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            result.append(parent)
            current = parent
        return result

    # --- Sync state ---

    def apply_sync_entries(self, graph: CodeGraph, entries: Iterable[SyncLockEntry]) -> CodeGraph:
        """Store sync records produced by an external scanner."""
        sync_lock = dict(graph.sync_lock)
        skipped = 0
        for entry in entries:
            if entry.node_id not in graph.nodes:
                skipped += 1
                continue
            sync_lock[entry.node_id] = entry
        if skipped:
            self.logger.debug(f"Skipped {skipped} sync entries for unknown nodes")
        return self._touch(graph, sync_lock=sync_lock)

    def get_sync_entry(self, graph: CodeGraph, node_id: str) -> Optional[SyncLockEntry]:
        return graph.sync_lock.get(node_id)

    def get_drifted_entries(self, graph: CodeGraph) -> List[SyncLockEntry]:
        """Entries whose node no longer matches its source file."""
        return [entry for entry in graph.sync_lock.values() if entry.status != SyncStatus.LOCKED]

    # --- Flows ---

    def add_flow(
        self,
        graph: CodeGraph,
        name: str,
        scope_node_id: str,
        steps: Sequence[FlowStep],
        description: str = "",
        sequence_diagram: str = "",
    ) -> Tuple[CodeGraph, str]:
        """Create a flow by hand. Steps pointing at unknown nodes are dropped."""
        flow_id = new_id()
        flow = GraphFlow(
            id=flow_id,
            name=name,
            description=description,
            scope_node_id=scope_node_id,
            steps=[s for s in steps if s.node_id in graph.nodes],
            sequence_diagram=sequence_diagram,
        )
        flows = dict(graph.flows)
        flows[flow_id] = flow
        return self._touch(graph, flows=flows), flow_id

    def merge_flows(
        self,
        graph: CodeGraph,
        flows: Iterable[GraphFlow],
        replace: bool = False,
        scope_node_id: Optional[str] = None,
    ) -> CodeGraph:
        """Merge validated flows into the graph, optionally dropping existing ones.

        With a module scope, replace drops only the flows scoped to that module.
        """
        if not replace:
            merged = dict(graph.flows)
        elif scope_node_id and scope_node_id != graph.root_node_id:
            merged = {fid: f for fid, f in graph.flows.items() if f.scope_node_id != scope_node_id}
        else:
            merged = {}
        for flow in flows:
            merged[flow.id] = flow
        return self._touch(graph, flows=merged)

    def remove_flow(self, graph: CodeGraph, flow_id: str) -> CodeGraph:
        if flow_id not in graph.flows:
            return graph
        return self._touch(graph, flows={fid: f for fid, f in graph.flows.items() if fid != flow_id})

    # --- Domain model ---

    def add_domain_node(
        self,
        graph: CodeGraph,
        name: str,
        parent_id: Optional[str] = None,
        description: Optional[str] = None,
        projections: Optional[Iterable[DomainProjection]] = None,
    ) -> Tuple[CodeGraph, str]:
        domain_id = new_id()
        valid_projections = [p for p in (projections or []) if p.graph_node_id in graph.nodes]
        domain_node = DomainNode(
            id=domain_id,
            name=name,
            description=description,
            parent_id=parent_id,
            projections=valid_projections,
        )

        domain_nodes = dict(graph.domain_nodes)
        domain_nodes[domain_id] = domain_node
        parent = domain_nodes.get(parent_id) if parent_id else None
        if parent is not None:
            domain_nodes[parent_id] = parent.model_copy(update={"children": [*parent.children, domain_id]})

        nodes = dict(graph.nodes)
        for projection in valid_projections:
            node = nodes[projection.graph_node_id]
            if domain_id not in node.domain_projections:
                nodes[node.id] = node.model_copy(update={"domain_projections": [*node.domain_projections, domain_id]})

        return self._touch(graph, domain_nodes=domain_nodes, nodes=nodes), domain_id

    def project_node(
        self,
        graph: CodeGraph,
        domain_node_id: str,
        graph_node_id: str,
        role: ProjectionRole = ProjectionRole.PRIMARY,
    ) -> CodeGraph:
        """Record that a technical node belongs to a domain concept."""
        domain_node = graph.domain_nodes.get(domain_node_id)
        node = graph.nodes.get(graph_node_id)
        if domain_node is None or node is None:
            return graph

        projections = [p for p in domain_node.projections if p.graph_node_id != graph_node_id]
        projections.append(DomainProjection(graph_node_id=graph_node_id, role=role))
        domain_nodes = dict(graph.domain_nodes)
        domain_nodes[domain_node_id] = domain_node.model_copy(update={"projections": projections})

        nodes = dict(graph.nodes)
        if domain_node_id not in node.domain_projections:
            nodes[graph_node_id] = node.model_copy(
                update={"domain_projections": [*node.domain_projections, domain_node_id]}
            )
        return self._touch(graph, domain_nodes=domain_nodes, nodes=nodes)

    def add_domain_relation(
        self,
        graph: CodeGraph,
        source_id: str,
        target_id: str,
        type: DomainRelationType,
        label: Optional[str] = None,
    ) -> Tuple[CodeGraph, str]:
        if source_id not in graph.domain_nodes or target_id not in graph.domain_nodes:
            self.logger.warning(f"Domain relation {source_id} -> {target_id} references a missing domain node")
        relation_id = new_id()
        domain_relations = dict(graph.domain_relations)
        domain_relations[relation_id] = DomainRelation(
            id=relation_id, source_id=source_id, target_id=target_id, type=type, label=label
        )
        return self._touch(graph, domain_relations=domain_relations), relation_id

    def remove_domain_node(self, graph: CodeGraph, domain_node_id: str) -> CodeGraph:
        """Remove a domain concept, its sub-concepts, their relations and projections."""
        domain_node = graph.domain_nodes.get(domain_node_id)
        if domain_node is None:
            return graph

        to_remove = set()
        stack = [domain_node_id]
        while stack:
            current_id = stack.pop()
            if current_id in to_remove or current_id not in graph.domain_nodes:
                continue
            to_remove.add(current_id)
            stack.extend(graph.domain_nodes[current_id].children)

        domain_nodes = {did: d for did, d in graph.domain_nodes.items() if did not in to_remove}
        parent = domain_nodes.get(domain_node.parent_id) if domain_node.parent_id else None
        if parent is not None:
            domain_nodes[parent.id] = parent.model_copy(
                update={"children": [c for c in parent.children if c != domain_node_id]}
            )

        domain_relations = {
            rid: rel for rid, rel in graph.domain_relations.items()
            if rel.source_id not in to_remove and rel.target_id not in to_remove
        }

        nodes = {}
        for nid, node in graph.nodes.items():
            if any(d in to_remove for d in node.domain_projections):
                node = node.model_copy(
                    update={"domain_projections": [d for d in node.domain_projections if d not in to_remove]}
                )
            nodes[nid] = node

        return self._touch(graph, domain_nodes=domain_nodes, domain_relations=domain_relations, nodes=nodes)

    def replace_domain_model(
        self,
        graph: CodeGraph,
        domain_nodes: Dict[str, DomainNode],
        domain_relations: Dict[str, DomainRelation],
    ) -> CodeGraph:
        """Swap in a whole domain model and rebuild the per-node projection lists."""
        projected: Dict[str, List[str]] = {}
        for did, dnode in domain_nodes.items():
            for projection in dnode.projections:
                projected.setdefault(projection.graph_node_id, []).append(did)

        nodes = {}
        for nid, node in graph.nodes.items():
            ids = projected.get(nid, [])
            nodes[nid] = node if node.domain_projections == ids else node.model_copy(update={"domain_projections": ids})

        return self._touch(
            graph,
            nodes=nodes,
            domain_nodes=dict(domain_nodes),
            domain_relations=dict(domain_relations),
        )

    # --- Statistics ---

    def get_stats(self, graph: CodeGraph) -> Dict[str, Any]:
        """Count nodes by kind and relations by type."""
        node_counts: Dict[str, int] = {}
        for node in graph.nodes.values():
            node_counts[node.kind.value] = node_counts.get(node.kind.value, 0) + 1

        rel_counts: Dict[str, int] = {}
        for rel in graph.relations.values():
            rel_counts[rel.type.value] = rel_counts.get(rel.type.value, 0) + 1

        return {
            "nodes": node_counts,
            "relationships": rel_counts,
            "domain_nodes": len(graph.domain_nodes),
            "flows": len(graph.flows),
        }
