import json

import pytest

from codelens.flow.flow_validator import FlowValidator, extract_json
from codelens.flow.summary_builder import FlowSummaryBuilder


@pytest.fixture
def shop_summary(shop_graph):
    graph, ids = shop_graph
    return FlowSummaryBuilder().build(graph), ids


def valid_flow(ids, name="checkout"):
    return {
        "name": name,
        "description": "Place an order",
        "scopeNodeId": ids["root"],
        "steps": [
            {"nodeId": ids["routes"], "label": "routes.py", "order": 1},
            {"nodeId": ids["main"], "label": "main.py", "order": 0},
        ],
    }


def invalid_flow(ids):
    return {"name": "broken", "scopeNodeId": ids["root"], "steps": [{"nodeId": "ghost", "order": 0}]}


class TestExtractJson:
    """Test JSON extraction from generator output."""

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"flows": []}\n```\nThanks'
        assert extract_json(text) == '{"flows": []}'

    def test_loose_object(self):
        assert extract_json('Sure! {"flows": [1]} done') == '{"flows": [1]}'

    def test_loose_array(self):
        assert extract_json("result: [1, 2]") == "[1, 2]"

    def test_plain_text_is_stripped(self):
        assert extract_json("  nothing here  ") == "nothing here"


class TestFlowValidator:
    """Test the batch acceptance policy and per-entry validation."""

    def setup_method(self):
        self.validator = FlowValidator(acceptance_ratio=0.5)

    def test_valid_batch(self, shop_summary):
        summary, ids = shop_summary
        result = self.validator.validate({"flows": [valid_flow(ids)]}, summary)

        assert result.accepted
        assert result.warnings == []
        flow = result.flows[0]
        assert flow.name == "checkout"
        assert flow.description == "Place an order"
        assert [s.node_id for s in flow.steps] == [ids["main"], ids["routes"]]
        assert flow.sequence_diagram.startswith("sequenceDiagram")

    def test_half_valid_batch_is_accepted(self, shop_summary):
        summary, ids = shop_summary
        result = self.validator.validate({"flows": [valid_flow(ids), invalid_flow(ids)]}, summary)

        assert result.accepted
        assert (result.valid, result.total) == (1, 2)
        assert len(result.flows) == 1
        assert result.warnings == ["Dropped 1 of 2 invalid flow entries"]

    def test_less_than_half_valid_batch_is_rejected(self, shop_summary):
        summary, ids = shop_summary
        raw = {"flows": [valid_flow(ids), invalid_flow(ids), invalid_flow(ids)]}
        result = self.validator.validate(raw, summary)

        assert not result.accepted
        assert result.flows == []
        assert result.warnings == ["Rejected flow batch: 1 of 3 entries passed validation"]

    def test_ratio_is_tunable(self, shop_summary):
        summary, ids = shop_summary
        strict = FlowValidator(acceptance_ratio=1.0)
        result = strict.validate({"flows": [valid_flow(ids), invalid_flow(ids)]}, summary)
        assert not result.accepted

    def test_empty_batch_is_rejected(self, shop_summary):
        summary, _ = shop_summary
        result = self.validator.validate({"flows": []}, summary)
        assert not result.accepted
        assert result.warnings == ["Rejected flow batch: 0 of 0 entries passed validation"]

    def test_text_and_list_inputs(self, shop_summary):
        summary, ids = shop_summary
        text = "```json\n" + json.dumps({"flows": [valid_flow(ids)]}) + "\n```"
        assert self.validator.validate(text, summary).accepted
        assert self.validator.validate([valid_flow(ids)], summary).accepted

    def test_unparseable_output(self, shop_summary):
        summary, _ = shop_summary
        result = self.validator.validate("I could not find any flows.", summary)
        assert not result.accepted
        assert result.warnings == ["Generator response has no flows array"]

    def test_scope_must_be_root_or_module(self, shop_summary):
        summary, ids = shop_summary
        graph_ids = set(summary.valid_node_ids())
        modules = set(summary.module_node_ids)

        on_module = dict(valid_flow(ids), scopeNodeId=ids["api"])
        on_file = dict(valid_flow(ids), scopeNodeId=ids["main"])
        assert self.validator.validate_entry(on_module, graph_ids, ids["root"], modules) is not None
        assert self.validator.validate_entry(on_file, graph_ids, ids["root"], modules) is None

    def test_entry_needs_name_and_two_valid_steps(self, shop_summary):
        summary, ids = shop_summary
        graph_ids = set(summary.valid_node_ids())
        modules = set(summary.module_node_ids)

        nameless = dict(valid_flow(ids), name="")
        one_step = dict(valid_flow(ids), steps=[{"nodeId": ids["main"], "order": 0}])
        symbol_step = dict(valid_flow(ids), steps=[
            {"nodeId": ids["main"], "order": 0},
            {"nodeId": ids["handle"], "order": 1},
        ])
        for entry in (nameless, one_step, symbol_step, "not a dict"):
            assert self.validator.validate_entry(entry, graph_ids, ids["root"], modules) is None

    def test_supplied_sequence_diagram_is_kept(self, shop_summary):
        summary, ids = shop_summary
        diagram = "sequenceDiagram\n  A->>B: go"
        entry = dict(valid_flow(ids), sequenceDiagram=diagram)
        flow = self.validator.validate({"flows": [entry]}, summary).flows[0]
        assert flow.sequence_diagram == diagram

    def test_missing_labels_and_orders_are_defaulted(self, shop_summary):
        summary, ids = shop_summary
        entry = dict(valid_flow(ids), steps=[{"node_id": ids["main"]}, {"nodeId": ids["repo"], "order": True}])
        flow = self.validator.validate({"flows": [entry]}, summary).flows[0]
        assert [(s.node_id, s.label, s.order) for s in flow.steps] == [
            (ids["main"], ids["main"], 0),
            (ids["repo"], ids["repo"], 1),
        ]
