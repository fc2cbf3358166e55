import pytest

from codelens.graph.lenses import COMPONENT_LENS_ID, FLOW_LENS_ID, component_lens, domain_lens, flow_lens
from codelens.lens.engine import LensEngine
from codelens.types import DepthRange, LensType, NodeKind, NodeFilter, RelationFilter, RelationType, ViewLens


OPEN_LENS = ViewLens(id="open", name="Open", type=LensType.CUSTOM)


class TestVisibleNodes:
    """Test lens node filtering."""

    def setup_method(self):
        self.engine = LensEngine()

    def test_open_lens_returns_every_node(self, shop_graph):
        graph, _ = shop_graph
        visible = self.engine.get_visible_nodes(graph, OPEN_LENS)
        assert {n.id for n in visible} == set(graph.nodes)
        assert len(visible) == len(graph.nodes)

    @pytest.mark.parametrize("depth", [0, 1, 2, 3])
    def test_exact_depth_range(self, shop_graph, depth):
        graph, _ = shop_graph
        visible = self.engine.get_visible_nodes(graph, OPEN_LENS, depth_range=DepthRange(min=depth, max=depth))
        expected = {n.id for n in graph.nodes.values() if n.depth == depth}
        assert {n.id for n in visible} == expected

    def test_output_is_tree_pre_order(self, shop_graph):
        graph, _ = shop_graph
        names = [n.name for n in self.engine.get_visible_nodes(graph, OPEN_LENS)]
        assert names == [
            "shop", "api", "main.py", "handle", "routes.py", "route",
            "core", "service.py", "OrderService", "repo.py", "save",
        ]

    def test_component_lens_filters_kinds_and_depth(self, shop_graph):
        graph, _ = shop_graph
        names = [n.name for n in self.engine.get_visible_nodes(graph, component_lens())]
        # functions are not component kinds
        assert names == ["shop", "api", "main.py", "routes.py", "core", "service.py", "OrderService", "repo.py"]

    def test_flow_lens_starts_at_depth_one(self, shop_graph):
        graph, _ = shop_graph
        names = {n.name for n in self.engine.get_visible_nodes(graph, flow_lens())}
        assert "shop" not in names
        assert {"handle", "route", "save", "OrderService"} <= names

    def test_hidden_override(self, store, shop_graph):
        graph, ids = shop_graph
        graph = store.set_node_lens_override(graph, ids["api"], COMPONENT_LENS_ID, visible=False)
        names = [n.name for n in self.engine.get_visible_nodes(graph, component_lens())]
        assert "api" not in names
        assert "main.py" in names

    def test_tag_filter(self, store, shop_graph):
        graph, ids = shop_graph
        graph = store.set_node_tags(graph, ids["repo"], ["storage"])
        lens = ViewLens(id="tagged", name="Tagged", type=LensType.CUSTOM,
                        node_filter=NodeFilter(tags=["storage", "net"]))
        assert [n.name for n in self.engine.get_visible_nodes(graph, lens)] == ["repo.py"]

    def test_focus_keeps_ancestors_and_descendants(self, shop_graph):
        graph, ids = shop_graph
        names = [n.name for n in self.engine.get_visible_nodes(graph, OPEN_LENS, focus_node_id=ids["core"])]
        assert names == ["shop", "core", "service.py", "OrderService", "repo.py", "save"]

    def test_root_and_unknown_focus_mean_no_focus(self, shop_graph):
        graph, _ = shop_graph
        everything = self.engine.get_visible_nodes(graph, OPEN_LENS)
        assert self.engine.get_visible_nodes(graph, OPEN_LENS, focus_node_id=graph.root_node_id) == everything
        assert self.engine.get_visible_nodes(graph, OPEN_LENS, focus_node_id="ghost") == everything

    def test_unreachable_nodes_come_last(self, store, shop_graph):
        graph, _ = shop_graph
        graph, loose = store.add_node(graph, "loose.py", NodeKind.MODULE, "missing-parent")
        visible = self.engine.get_visible_nodes(graph, OPEN_LENS)
        assert visible[-1].id == loose

    def test_domain_lens_is_unfiltered(self, shop_graph):
        graph, _ = shop_graph
        assert len(self.engine.get_visible_nodes(graph, domain_lens())) == len(graph.nodes)


class TestVisibleRelations:
    """Test lens relation filtering."""

    def setup_method(self):
        self.engine = LensEngine()

    def test_requires_both_endpoints_visible(self, shop_graph):
        graph, ids = shop_graph
        visible_ids = {ids["main"], ids["routes"], ids["service"]}
        rels = self.engine.get_visible_relations(graph, OPEN_LENS, visible_ids)
        assert [(r.source_id, r.target_id) for r in rels] == [
            (ids["main"], ids["routes"]),
            (ids["routes"], ids["service"]),
        ]

    def test_type_filter(self, shop_graph):
        graph, _ = shop_graph
        lens = ViewLens(id="calls", name="Calls", type=LensType.CUSTOM,
                        relation_filter=RelationFilter(types=[RelationType.CALLS]))
        rels = self.engine.get_visible_relations(graph, lens, set(graph.nodes))
        assert [r.type for r in rels] == [RelationType.CALLS]

    def test_per_lens_hidden_flag(self, store, shop_graph):
        graph, _ = shop_graph
        rid = next(iter(graph.relations))
        graph = store.set_relation_visibility(graph, rid, FLOW_LENS_ID, False)

        flow_ids = {r.id for r in self.engine.get_visible_relations(graph, flow_lens(), set(graph.nodes))}
        component_ids = {r.id for r in self.engine.get_visible_relations(graph, component_lens(), set(graph.nodes))}
        assert rid not in flow_ids
        assert rid in component_ids

    def test_dangling_relation_is_hidden(self, store, package_graph):
        graph, rid = store.add_relation(package_graph, "F1", "ghost", RelationType.DEPENDS_ON)
        rels = self.engine.get_visible_relations(graph, OPEN_LENS, set(graph.nodes))
        assert rid not in {r.id for r in rels}
