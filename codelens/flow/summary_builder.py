from typing import List, Dict, Optional, Set

from ..config import settings
from ..lens.engine import LensEngine
from ..types import CodeGraph, GraphNode, RelationType
from ..utils.logger import app_logger
from .models import (
    CallEdge, EntryPoint, FileEdge, FileSummary, FileSymbol, FlowSummary, ModuleSummary,
)


MODULE_DEPTH = 1
FILE_DEPTH = 2
SYMBOL_DEPTH = 3


class FlowSummaryBuilder:
    """Derives the module -> file -> symbol digest used to generate runtime flows.

    The builder only structures data; it never writes prose or calls out.
    """

    def __init__(self, lens_engine: Optional[LensEngine] = None):
        self.logger = app_logger.bind(component="flow_summary_builder")
        self.lens_engine = lens_engine or LensEngine()
        self.entry_pattern = settings.entry_point_regex
        self.fallback_count = settings.entry_point_fallback_count

    def _scope_ids(self, graph: CodeGraph, scope_node_id: Optional[str]) -> Optional[Set[str]]:
        if not scope_node_id or scope_node_id == graph.root_node_id:
            return None
        scope = graph.nodes.get(scope_node_id)
        if scope is None or scope.depth != MODULE_DEPTH:
            self.logger.warning(f"Scope {scope_node_id} is not a module node, summarizing the whole graph")
            return None
        ids = {scope.id}
        ids.update(n.id for n in self.lens_engine.store.get_descendants(graph, scope.id))
        return ids

    def build(self, graph: CodeGraph, scope_node_id: Optional[str] = None) -> FlowSummary:
        """Build the digest for the whole graph or for one depth-1 module."""
        scope_ids = self._scope_ids(graph, scope_node_id)
        nodes = [
            n for n in self.lens_engine.ordered_nodes(graph)
            if scope_ids is None or n.id in scope_ids
        ]
        by_id = graph.nodes

        modules_nodes = [n for n in nodes if n.depth == MODULE_DEPTH]
        file_nodes = [n for n in nodes if n.depth == FILE_DEPTH]
        file_ids = {n.id for n in file_nodes}
        symbol_ids = {n.id for n in nodes if n.depth == SYMBOL_DEPTH}

        file_to_module: Dict[str, GraphNode] = {}
        for f in file_nodes:
            parent = by_id.get(f.parent_id) if f.parent_id else None
            if parent is not None and parent.depth == MODULE_DEPTH:
                file_to_module[f.id] = parent

        modules = [self._summarize_module(graph, mod) for mod in modules_nodes]

        file_edges = []
        for rel in graph.relations.values():
            if rel.type == RelationType.CONTAINS:
                continue
            if rel.source_id not in file_ids or rel.target_id not in file_ids:
                continue
            source_mod = file_to_module.get(rel.source_id)
            target_mod = file_to_module.get(rel.target_id)
            file_edges.append(FileEdge(
                source_id=rel.source_id,
                target_id=rel.target_id,
                source_module=source_mod.name if source_mod else "unknown",
                target_module=target_mod.name if target_mod else "unknown",
                label=rel.label or rel.type.value,
                relation_type=rel.type.value,
            ))

        call_edges = []
        for rel in graph.relations.values():
            if rel.type != RelationType.CALLS:
                continue
            if rel.source_id not in symbol_ids or rel.target_id not in symbol_ids:
                continue
            caller = by_id[rel.source_id]
            callee = by_id[rel.target_id]
            caller_file = by_id.get(caller.parent_id) if caller.parent_id else None
            callee_file = by_id.get(callee.parent_id) if callee.parent_id else None
            if caller_file is None or callee_file is None:
                continue
            if caller_file.depth != FILE_DEPTH or callee_file.depth != FILE_DEPTH:
                continue
            call_edges.append(CallEdge(
                caller_file=caller_file.name,
                caller_symbol=caller.name,
                callee_file=callee_file.name,
                callee_symbol=callee.name,
            ))

        entry_points = self._rank_entry_points(graph, file_nodes, file_edges, file_to_module)

        self.logger.debug(
            f"Summary for graph {graph.id}: {len(modules)} modules, {len(file_nodes)} files, "
            f"{len(file_edges)} file edges, {len(call_edges)} call edges"
        )
        return FlowSummary(
            root_node_id=graph.root_node_id,
            scope_node_id=scope_node_id if scope_ids is not None else None,
            modules=modules,
            file_edges=file_edges,
            call_edges=call_edges,
            entry_points=entry_points,
        )

    def _summarize_module(self, graph: CodeGraph, module: GraphNode) -> ModuleSummary:
        files = []
        for child in self.lens_engine.store.get_children(graph, module.id):
            if child.depth != FILE_DEPTH:
                continue
            symbols = [
                FileSymbol(node_id=s.id, name=s.name, kind=s.kind.value)
                for s in self.lens_engine.store.get_children(graph, child.id)
                if s.depth == SYMBOL_DEPTH
            ]
            files.append(FileSummary(
                node_id=child.id,
                name=child.name,
                symbols=symbols,
                exported_symbols=[s.name for s in symbols],
            ))
        return ModuleSummary(node_id=module.id, name=module.name, files=files)

    def _rank_entry_points(
        self,
        graph: CodeGraph,
        file_nodes: List[GraphNode],
        file_edges: List[FileEdge],
        file_to_module: Dict[str, GraphNode],
    ) -> List[EntryPoint]:
        """Files nobody depends on or named like an entry point, fewest incoming edges first."""
        incoming = {f.id: 0 for f in file_nodes}
        for edge in file_edges:
            incoming[edge.target_id] = incoming.get(edge.target_id, 0) + 1

        def entry(node: GraphNode) -> EntryPoint:
            module = file_to_module.get(node.id)
            return EntryPoint(
                node_id=node.id,
                name=node.name,
                module_node_id=module.id if module else graph.root_node_id,
                incoming_edges=incoming[node.id],
                matches_pattern=bool(self.entry_pattern.search(node.name)),
            )

        candidates = [entry(f) for f in file_nodes]
        qualified = [c for c in candidates if c.incoming_edges == 0 or c.matches_pattern]
        if qualified:
            # sorted() is stable, so ties keep tree order
            return sorted(qualified, key=lambda c: (c.incoming_edges, not c.matches_pattern))

        return sorted(candidates, key=lambda c: c.incoming_edges)[:self.fallback_count]
