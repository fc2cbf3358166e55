from typing import List, Dict, Any, Union
import json

from pydantic import BaseModel, Field

from ..flow.flow_validator import extract_json
from ..graph.store import GraphStore, new_id
from ..types import (
    CodeGraph, DomainNode, DomainProjection, DomainRelation, DomainRelationType, ProjectionRole,
)
from ..utils.logger import app_logger


class DomainModelResult(BaseModel):
    domain_nodes: Dict[str, DomainNode] = Field(default_factory=dict)
    domain_relations: Dict[str, DomainRelation] = Field(default_factory=dict)
    accepted: bool = False
    warnings: List[str] = Field(default_factory=list)


class DomainModelBuilder:
    """Turns an external domain analysis payload into validated domain nodes and relations.

    Expected payload::

        {"domains": [{"name", "description", "parent", "projections": [{"nodeId", "role"}]}],
         "relations": [{"source", "target", "type", "label"}]}

    Projections to unknown nodes or with unknown roles are dropped, relations
    between unknown domain names are dropped and unknown relation types fall
    back to ``requires``.
    """

    def __init__(self, store: GraphStore = None):
        self.logger = app_logger.bind(component="domain_model_builder")
        self.store = store or GraphStore()

    def _parse(self, raw: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(raw, str):
            raw = json.loads(extract_json(raw))
        if not isinstance(raw, dict) or not isinstance(raw.get("domains"), list):
            raise ValueError('Response missing "domains" array')
        return raw

    def build(self, graph: CodeGraph, raw: Union[str, Dict[str, Any]]) -> DomainModelResult:
        try:
            payload = self._parse(raw)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            self.logger.warning(f"Rejected domain analysis: {e}")
            return DomainModelResult(warnings=[f"Rejected domain analysis: {e}"])

        warnings = []
        valid_roles = {role.value for role in ProjectionRole}
        valid_types = {t.value for t in DomainRelationType}

        name_to_id: Dict[str, str] = {}
        nodes: Dict[str, DomainNode] = {}
        parents: Dict[str, str] = {}

        for domain in payload["domains"]:
            if not isinstance(domain, dict) or not isinstance(domain.get("name"), str) or not domain["name"]:
                warnings.append("Skipped a domain entry without a name")
                continue
            if domain["name"] in name_to_id:
                warnings.append(f'Skipped duplicate domain "{domain["name"]}"')
                continue

            raw_projections = domain.get("projections") or []
            if not isinstance(raw_projections, list):
                warnings.append(f'Ignored projections of domain "{domain["name"]}": not a list')
                raw_projections = []

            projections = []
            for projection in raw_projections:
                if not isinstance(projection, dict):
                    warnings.append(f'Skipped a malformed projection of domain "{domain["name"]}"')
                    continue
                node_id = projection.get("nodeId", projection.get("node_id"))
                role = projection.get("role", ProjectionRole.PRIMARY.value)
                if not isinstance(node_id, str) or not isinstance(role, str):
                    warnings.append(f'Skipped a malformed projection of domain "{domain["name"]}"')
                    continue
                if node_id in graph.nodes and role in valid_roles:
                    projections.append(DomainProjection(graph_node_id=node_id, role=ProjectionRole(role)))

            domain_id = new_id()
            name_to_id[domain["name"]] = domain_id
            description = domain.get("description")
            nodes[domain_id] = DomainNode(
                id=domain_id,
                name=domain["name"],
                description=description if isinstance(description, str) else None,
                projections=projections,
            )
            if isinstance(domain.get("parent"), str):
                parents[domain_id] = domain["parent"]

        # Nest domains under named parents once every name is known
        for domain_id, parent_name in parents.items():
            parent_id = name_to_id.get(parent_name)
            if parent_id is None or parent_id == domain_id:
                continue
            nodes[domain_id] = nodes[domain_id].model_copy(update={"parent_id": parent_id})
            parent = nodes[parent_id]
            nodes[parent_id] = parent.model_copy(update={"children": [*parent.children, domain_id]})

        relations: Dict[str, DomainRelation] = {}
        raw_relations = payload.get("relations") or []
        if not isinstance(raw_relations, list):
            warnings.append('Ignored "relations": not a list')
            raw_relations = []

        for rel in raw_relations:
            if not isinstance(rel, dict):
                warnings.append("Skipped a malformed relation entry")
                continue
            source, target, rel_type = rel.get("source"), rel.get("target"), rel.get("type")
            if not isinstance(source, str) or not isinstance(target, str):
                warnings.append("Skipped a malformed relation entry")
                continue
            if rel_type is not None and not isinstance(rel_type, str):
                warnings.append(f"Skipped relation {source} -> {target}: type is not a string")
                continue
            source_id = name_to_id.get(source)
            target_id = name_to_id.get(target)
            if source_id is None or target_id is None:
                continue
            label = rel.get("label")
            relation_id = new_id()
            relations[relation_id] = DomainRelation(
                id=relation_id,
                source_id=source_id,
                target_id=target_id,
                type=DomainRelationType(rel_type) if rel_type in valid_types else DomainRelationType.REQUIRES,
                label=label if isinstance(label, str) else None,
            )

        self.logger.info(f"Built domain model with {len(nodes)} concepts and {len(relations)} relations")
        return DomainModelResult(domain_nodes=nodes, domain_relations=relations, accepted=True, warnings=warnings)

    def apply(self, graph: CodeGraph, result: DomainModelResult) -> CodeGraph:
        """Replace the graph's domain model with an accepted result."""
        if not result.accepted:
            return graph
        return self.store.replace_domain_model(graph, result.domain_nodes, result.domain_relations)
