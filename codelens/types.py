from typing import List, Dict, Any, Optional, Literal
from enum import Enum
import time

from pydantic import BaseModel, ConfigDict, Field


MAX_DEPTH = 4

LayoutHint = Literal["TD", "LR", "BT", "RL"]


class NodeKind(str, Enum):
    """Kind of a technical graph node."""
    SYSTEM = "system"
    PACKAGE = "package"
    MODULE = "module"
    CLASS = "class"
    FUNCTION = "function"
    INTERFACE = "interface"
    VARIABLE = "variable"
    METHOD = "method"
    FIELD = "field"


class RelationType(str, Enum):
    """Relation type between two graph nodes."""
    CONTAINS = "contains"
    DEPENDS_ON = "depends_on"
    IMPLEMENTS = "implements"
    INHERITS = "inherits"
    CALLS = "calls"
    EMITS = "emits"
    SUBSCRIBES = "subscribes"
    READS = "reads"
    WRITES = "writes"


class LensType(str, Enum):
    """Lens type enumeration."""
    COMPONENT = "component"
    FLOW = "flow"
    DOMAIN = "domain"
    CUSTOM = "custom"


class NodeShape(str, Enum):
    """Mermaid node shapes a style rule can select."""
    DEFAULT = "default"
    ROUNDED = "rounded"
    STADIUM = "stadium"
    CYLINDER = "cylinder"
    HEXAGON = "hexagon"
    TRAPEZOID = "trapezoid"
    CIRCLE = "circle"
    DIAMOND = "diamond"


class ProjectionRole(str, Enum):
    PRIMARY = "primary"
    SUPPORTING = "supporting"
    REFERENCED = "referenced"


class DomainRelationType(str, Enum):
    OWNS = "owns"
    TRIGGERS = "triggers"
    REQUIRES = "requires"
    PRODUCES = "produces"
    CONSUMES = "consumes"


class SyncStatus(str, Enum):
    LOCKED = "locked"
    MODIFIED = "modified"
    MISSING = "missing"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AnomalyType(str, Enum):
    ORPHAN_NODE = "orphan_node"
    BROKEN_REFERENCE = "broken_reference"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    HIGH_COUPLING = "high_coupling"
    GOD_NODE = "god_node"


class FrozenModel(BaseModel):
    """Base for graph values. Updates go through model_copy, never in place."""
    model_config = ConfigDict(frozen=True)


class SourceRef(FrozenModel):
    """Location of a node in the scanned codebase."""
    file_path: str
    line_start: int = 0
    line_end: int = 0
    content_hash: str = ""


class LensOverride(FrozenModel):
    """Per-lens visual override stored on a node."""
    visible: Optional[bool] = None
    shape: Optional[NodeShape] = None
    style: Optional[str] = None


class GraphNode(FrozenModel):
    """Represents a node in the code graph."""
    id: str
    name: str
    kind: NodeKind
    depth: int = Field(default=0, ge=0, le=MAX_DEPTH)
    parent_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    source_ref: Optional[SourceRef] = None
    tags: List[str] = Field(default_factory=list)
    lens_config: Dict[str, LensOverride] = Field(default_factory=dict)
    domain_projections: List[str] = Field(default_factory=list)
    description: Optional[str] = None


class GraphRelation(FrozenModel):
    """Represents an edge in the code graph."""
    id: str
    source_id: str
    target_id: str
    type: RelationType
    label: Optional[str] = None
    lens_visibility: Dict[str, bool] = Field(default_factory=dict)


class NodeFilter(FrozenModel):
    kinds: Optional[List[NodeKind]] = None
    min_depth: Optional[int] = None
    max_depth: Optional[int] = None
    tags: Optional[List[str]] = None


class RelationFilter(FrozenModel):
    types: Optional[List[RelationType]] = None


class StyleMatch(FrozenModel):
    """Match criteria of a style rule. An empty match accepts every node."""
    kinds: Optional[List[NodeKind]] = None
    depths: Optional[List[int]] = None
    tags: Optional[List[str]] = None

    def matches(self, node: GraphNode) -> bool:
        if self.kinds and node.kind not in self.kinds:
            return False
        if self.depths and node.depth not in self.depths:
            return False
        if self.tags and not any(tag in node.tags for tag in self.tags):
            return False
        return True


class StyleRule(FrozenModel):
    match: StyleMatch = Field(default_factory=StyleMatch)
    shape: Optional[NodeShape] = None
    style: Optional[str] = None


class ViewLens(FrozenModel):
    """A named filter and style configuration producing one projection of the graph."""
    id: str
    name: str
    type: LensType
    node_filter: NodeFilter = Field(default_factory=NodeFilter)
    relation_filter: RelationFilter = Field(default_factory=RelationFilter)
    style_rules: List[StyleRule] = Field(default_factory=list)
    layout_hint: LayoutHint = "TD"


class DepthRange(FrozenModel):
    """Explicit depth bounds overriding a lens's defaults."""
    min: Optional[int] = None
    max: Optional[int] = None


class DomainProjection(FrozenModel):
    graph_node_id: str
    role: ProjectionRole = ProjectionRole.PRIMARY


class DomainNode(FrozenModel):
    """A business/domain concept, projected onto technical nodes."""
    id: str
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    projections: List[DomainProjection] = Field(default_factory=list)


class DomainRelation(FrozenModel):
    id: str
    source_id: str
    target_id: str
    type: DomainRelationType
    label: Optional[str] = None


class SyncLockEntry(FrozenModel):
    """Drift record for one node, supplied by an external scanner."""
    node_id: str
    source_ref: SourceRef
    status: SyncStatus = SyncStatus.LOCKED
    last_checked: float = 0.0


class FlowStep(FrozenModel):
    node_id: str
    label: str
    order: int


class GraphFlow(FrozenModel):
    """An ordered, narrated path of nodes representing a runtime scenario."""
    id: str
    name: str
    description: str = ""
    scope_node_id: str
    steps: List[FlowStep] = Field(default_factory=list)
    sequence_diagram: str = ""


class CodeGraph(FrozenModel):
    """Aggregate root. Every mutation produces a new CodeGraph value."""
    id: str
    name: str
    owner_id: str
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    nodes: Dict[str, GraphNode] = Field(default_factory=dict)
    relations: Dict[str, GraphRelation] = Field(default_factory=dict)
    domain_nodes: Dict[str, DomainNode] = Field(default_factory=dict)
    domain_relations: Dict[str, DomainRelation] = Field(default_factory=dict)
    lenses: List[ViewLens] = Field(default_factory=list)
    active_lens_id: Optional[str] = None
    sync_lock: Dict[str, SyncLockEntry] = Field(default_factory=dict)
    flows: Dict[str, GraphFlow] = Field(default_factory=dict)
    root_node_id: str

    @property
    def root(self) -> Optional[GraphNode]:
        return self.nodes.get(self.root_node_id)

    @property
    def active_lens(self) -> Optional[ViewLens]:
        for lens in self.lenses:
            if lens.id == self.active_lens_id:
                return lens
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")


class Anomaly(FrozenModel):
    """A structural finding produced by read-only analysis."""
    type: AnomalyType
    severity: Severity
    message: str
    node_ids: List[str] = Field(default_factory=list)
    relation_ids: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "node_ids": list(self.node_ids),
            "relation_ids": list(self.relation_ids),
        }
