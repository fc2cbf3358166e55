import pytest

from codelens.graph.lenses import COMPONENT_LENS_ID, component_lens, domain_lens
from codelens.render.mermaid_renderer import MermaidRenderer, sanitize_id, sanitize_label, wrap_in_shape
from codelens.types import (
    DomainProjection, DomainRelationType, LensType, NodeFilter, NodeKind, NodeShape, RelationType, ViewLens,
)


class TestSanitizing:
    """Test identifier and label escaping."""

    def test_sanitize_id(self):
        assert sanitize_id("a-b.c/d e") == "a_b_c_d_e"
        assert sanitize_id("ok_123") == "ok_123"

    def test_reserved_and_empty_ids_are_prefixed(self):
        assert sanitize_id("end") == "n_end"
        assert sanitize_id("") == "n_"

    def test_sanitize_label_escapes_quotes(self):
        assert sanitize_label('say "hi"') == "say #quot;hi#quot;"

    @pytest.mark.parametrize("shape, expected", [
        (None, 'x["L"]'),
        (NodeShape.DEFAULT, 'x["L"]'),
        (NodeShape.ROUNDED, 'x("L")'),
        (NodeShape.STADIUM, 'x(["L"])'),
        (NodeShape.CYLINDER, 'x[("L")]'),
        (NodeShape.HEXAGON, 'x{{"L"}}'),
        (NodeShape.CIRCLE, 'x(("L"))'),
        (NodeShape.DIAMOND, 'x{"L"}'),
    ])
    def test_shapes(self, shape, expected):
        assert wrap_in_shape("x", "L", shape) == expected


class TestRender:
    """Test lens view rendering."""

    def setup_method(self):
        self.renderer = MermaidRenderer()

    def test_package_scenario(self, package_graph):
        output = self.renderer.render(package_graph, component_lens())
        lines = output.split("\n")
        root_sid = sanitize_id(package_graph.root_node_id)

        assert lines[0] == "flowchart TD"
        assert lines[1] == f'  subgraph {root_sid}["R"]'
        assert lines[2:7] == [
            '    subgraph P["P"]',
            '      F1["F1"]',
            '      F2["F2"]',
            "    end",
            "  end",
        ]
        assert lines.count('  F1-->|"utils"|F2') == 1
        opened = sum(1 for line in lines if line.strip().startswith("subgraph "))
        closed = sum(1 for line in lines if line.strip() == "end")
        assert opened == closed == 2

    def test_styles_come_last(self, package_graph):
        lines = self.renderer.render(package_graph, component_lens()).split("\n")
        style_lines = [i for i, line in enumerate(lines) if line.strip().startswith("style ")]
        assert style_lines
        assert style_lines == list(range(len(lines) - len(style_lines), len(lines)))
        assert "  style P fill:#1e3a2f,stroke:#22c55e,color:#86efac" in lines

    def test_rendering_is_deterministic(self, shop_graph):
        graph, _ = shop_graph
        assert self.renderer.render(graph, component_lens()) == self.renderer.render(graph, component_lens())

    def test_rename_changes_only_label(self, store, package_graph):
        before = self.renderer.render(package_graph, component_lens()).split("\n")
        after = self.renderer.render(store.rename_node(package_graph, "F1", "First"), component_lens()).split("\n")

        assert len(before) == len(after)
        changed = [(b, a) for b, a in zip(before, after) if b != a]
        assert changed == [('      F1["F1"]', '      F1["First"]')]

    def test_quotes_in_names_are_escaped(self, store, package_graph):
        graph = store.rename_node(package_graph, "F2", 'the "utils"')
        assert '      F2["the #quot;utils#quot;"]' in self.renderer.render(graph, component_lens())

    def test_contains_relations_are_not_edges(self, store, package_graph):
        graph, _ = store.add_relation(package_graph, "P", "F1", RelationType.CONTAINS)
        output = self.renderer.render(graph, component_lens())
        assert "P-->" not in output

    def test_style_rule_shape_and_override(self, store, shop_graph):
        graph, ids = shop_graph
        sid = sanitize_id(ids["OrderService"])
        assert f'{sid}(["OrderService"])' in self.renderer.render(graph, component_lens())

        graph = store.set_node_lens_override(graph, ids["OrderService"], COMPONENT_LENS_ID,
                                             shape=NodeShape.HEXAGON, style="fill:#fff")
        output = self.renderer.render(graph, component_lens())
        assert f'{sid}{{{{"OrderService"}}}}' in output
        assert f"  style {sid} fill:#fff" in output

    def test_focus_limits_output(self, shop_graph):
        graph, ids = shop_graph
        output = self.renderer.render(graph, component_lens(), focus_node_id=ids["api"])
        assert "main.py" in output
        assert "service.py" not in output

    def test_placeholder_when_nothing_visible(self, package_graph):
        lens = ViewLens(id="none", name="None", type=LensType.CUSTOM,
                        node_filter=NodeFilter(kinds=[NodeKind.INTERFACE]))
        assert self.renderer.render(package_graph, lens) == 'flowchart TD\n  empty["No nodes match the current view"]'

    def test_layout_hint_is_used(self, package_graph):
        lens = component_lens().model_copy(update={"layout_hint": "LR"})
        assert self.renderer.render(package_graph, lens).startswith("flowchart LR\n")

    def test_render_active(self, package_graph):
        assert self.renderer.render_active(package_graph) == self.renderer.render(package_graph, component_lens())


class TestDomainView:
    """Test domain model rendering."""

    def setup_method(self):
        self.renderer = MermaidRenderer()

    def test_empty_domain_placeholder(self, package_graph):
        expected = 'flowchart TD\n  empty["No domain model defined yet"]'
        assert self.renderer.render_domain_view(package_graph) == expected
        assert self.renderer.render(package_graph, domain_lens()) == expected

    def test_domain_nodes_relations_and_styles(self, store, package_graph):
        graph, sales = store.add_domain_node(package_graph, "Sales")
        graph, invoices = store.add_domain_node(graph, "Invoices", parent_id=sales, projections=[
            DomainProjection(graph_node_id="F1"), DomainProjection(graph_node_id="F2"),
        ])
        graph, billing = store.add_domain_node(graph, "Billing", projections=[DomainProjection(graph_node_id="F1")])
        graph, _ = store.add_domain_relation(graph, invoices, billing, DomainRelationType.PRODUCES)

        lines = self.renderer.render_domain_view(graph).split("\n")
        s, i, b = sanitize_id(sales), sanitize_id(invoices), sanitize_id(billing)

        assert lines[:5] == [
            "flowchart TD",
            f'  subgraph {s}["Sales"]',
            f'    {i}("Invoices<br/>(2 components)")',
            "  end",
            f'  {b}("Billing<br/>(1 component)")',
        ]
        assert f'  {i}==>|"produces"|{b}' in lines
        assert sum(1 for line in lines if line.startswith("  style ")) == 3

    def test_dangling_domain_relation_dropped(self, store, package_graph):
        graph, sales = store.add_domain_node(package_graph, "Sales")
        graph, _ = store.add_domain_relation(graph, sales, "ghost", DomainRelationType.OWNS)
        assert "-->" not in self.renderer.render_domain_view(graph)
