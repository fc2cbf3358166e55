import json

import pytest

from codelens.main import find_lens, load_graph, main
from codelens.errors import GraphFileError
from codelens.types import RelationType


@pytest.fixture
def graph_file(tmp_path, package_graph):
    path = tmp_path / "graph.json"
    path.write_text(package_graph.model_dump_json(), encoding="utf-8")
    return path


@pytest.fixture
def shop_file(tmp_path, shop_graph):
    graph, ids = shop_graph
    path = tmp_path / "shop.json"
    path.write_text(graph.model_dump_json(), encoding="utf-8")
    return path, ids


class TestLoading:
    """Test graph file loading."""

    def test_round_trip(self, graph_file, package_graph):
        assert load_graph(str(graph_file)) == package_graph

    def test_missing_file(self, tmp_path):
        with pytest.raises(GraphFileError):
            load_graph(str(tmp_path / "missing.json"))

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe{")
        with pytest.raises(GraphFileError):
            load_graph(str(path))
        assert main(["stats", str(path)]) == 1

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"name": "x"}', encoding="utf-8")
        with pytest.raises(GraphFileError):
            load_graph(str(path))

    def test_find_lens(self, package_graph):
        assert find_lens(package_graph, None).id == package_graph.active_lens_id
        assert find_lens(package_graph, "flow").id == "lens-flow"
        assert find_lens(package_graph, "Domain").id == "lens-domain"
        assert find_lens(package_graph, "nope") is None


class TestCommands:
    """Test the command line interface."""

    def test_render(self, graph_file, capsys):
        assert main(["render", str(graph_file)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("flowchart TD")
        assert '  F1-->|"utils"|F2' in out

    def test_render_to_file(self, graph_file, tmp_path):
        target = tmp_path / "view.mmd"
        assert main(["render", str(graph_file), "--lens", "flow", "-o", str(target)]) == 0
        assert target.read_text(encoding="utf-8").startswith("flowchart LR")

    def test_render_unknown_lens(self, graph_file):
        assert main(["render", str(graph_file), "--lens", "nope"]) == 1

    def test_render_missing_file(self, tmp_path):
        assert main(["render", str(tmp_path / "missing.json")]) == 1

    def test_anomalies_json_and_strict(self, tmp_path, store, package_graph, capsys):
        graph, _ = store.add_relation(package_graph, "F2", "F1", RelationType.DEPENDS_ON)
        path = tmp_path / "cycle.json"
        path.write_text(graph.model_dump_json(), encoding="utf-8")

        assert main(["anomalies", str(path), "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [a["type"] for a in data] == ["circular_dependency"]

        assert main(["anomalies", str(path), "--strict"]) == 2
        assert "[warning] circular_dependency" in capsys.readouterr().out

    def test_summary(self, shop_file, capsys):
        path, ids = shop_file
        assert main(["summary", str(path), "--scope", ids["core"]]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["scope_node_id"] == ids["core"]
        assert [m["name"] for m in data["modules"]] == ["core"]

    def test_flows_write(self, shop_file, tmp_path, capsys):
        path, _ = shop_file
        target = tmp_path / "with_flows.json"
        assert main(["flows", str(path), "--write", str(target)]) == 0
        assert "handle (main.py -> repo.py)" in capsys.readouterr().out
        assert len(load_graph(str(target)).flows) == 1

    def test_stats(self, graph_file, capsys):
        assert main(["stats", str(graph_file)]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["relationships"] == {"depends_on": 1}
