"""
Data models for flow summaries and flow generation results.
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, Field

from ..types import GraphFlow


class FileSymbol(BaseModel):
    """A depth-3 symbol declared in a file."""
    node_id: str
    name: str
    kind: str


class FileSummary(BaseModel):
    node_id: str
    name: str
    symbols: List[FileSymbol] = Field(default_factory=list)
    exported_symbols: List[str] = Field(default_factory=list)


class ModuleSummary(BaseModel):
    node_id: str
    name: str
    files: List[FileSummary] = Field(default_factory=list)


class FileEdge(BaseModel):
    """A dependency between two files, labelled with the imported symbol when known."""
    source_id: str
    target_id: str
    source_module: str
    target_module: str
    label: str
    relation_type: str


class CallEdge(BaseModel):
    caller_file: str
    caller_symbol: str
    callee_file: str
    callee_symbol: str


class EntryPoint(BaseModel):
    node_id: str
    name: str
    module_node_id: str
    incoming_edges: int = 0
    matches_pattern: bool = False


class FlowSummary(BaseModel):
    """Structural digest handed to an external narrative generator."""
    root_node_id: str
    scope_node_id: Optional[str] = None
    modules: List[ModuleSummary] = Field(default_factory=list)
    file_edges: List[FileEdge] = Field(default_factory=list)
    call_edges: List[CallEdge] = Field(default_factory=list)
    entry_points: List[EntryPoint] = Field(default_factory=list)

    @property
    def module_node_ids(self) -> List[str]:
        return [m.node_id for m in self.modules]

    @property
    def file_node_ids(self) -> List[str]:
        return [f.node_id for m in self.modules for f in m.files]

    def valid_node_ids(self) -> List[str]:
        """Ids a generated flow may reference: the root, modules and files."""
        return [self.root_node_id, *self.module_node_ids, *self.file_node_ids]


class FlowBatchResult(BaseModel):
    """Outcome of validating one externally generated flow batch."""
    flows: List[GraphFlow] = Field(default_factory=list)
    total: int = 0
    valid: int = 0
    accepted: bool = False
    warnings: List[str] = Field(default_factory=list)


class FlowGenerationResult(BaseModel):
    flows: List[GraphFlow] = Field(default_factory=list)
    source: Literal["generator", "heuristic"] = "heuristic"
    # Module the run was restricted to; None for whole-graph runs
    scope_node_id: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
