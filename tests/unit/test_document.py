"""
Tests for graph documents and store persistence.
"""

import json

import pytest

from flowly.core.document import (
    DOCUMENT_VERSION,
    DocumentError,
    dumps,
    loads,
    parse_document,
    read_document,
    save_document,
)
from flowly.core.events import GraphEvent
from flowly.core.store import GraphStore


def build_sample(store):
    store.add_node(
        id="A",
        x=10,
        y=-5.5,
        name="Source",
        data={"params": {"gain": 0.5}},
        output={"id": "out", "name": "Out", "limit": 1, "color": "#f00"},
        html_content="<div>A</div>",
        theme={"headerColor": "#333"},
    )
    store.add_node(
        id="B",
        x=200,
        y=40,
        name="Sink",
        input={"id": "in"},
        output={"id": "out"},
        show_header=False,
        read_only=True,
    )
    store.add_node(id="C", input={"id": "in", "limit": 3})
    store.add_connection("A", "A-out", "C", "C-in", "<b>label</b>")
    return store


def minimal_doc(**overrides):
    doc = {
        "nodes": [
            {"id": "A", "x": 0, "y": 0, "output": {"id": "out"}},
            {"id": "B", "x": 1, "y": 1, "input": {"id": "in"}},
        ],
        "connections": [
            {
                "id": "conn-1",
                "sourceNodeId": "A",
                "sourceOutputId": "A-out",
                "targetNodeId": "B",
                "targetInputId": "B-in",
            },
        ],
    }
    doc.update(overrides)
    return doc


class TestToDocument:
    """Tests for GraphStore.to_document."""

    def test_node_record_fields(self, store):
        build_sample(store)
        doc = store.to_document()

        assert doc["version"] == DOCUMENT_VERSION
        record = doc["nodes"][0]
        assert set(record) == {
            "id", "x", "y", "data", "input", "output",
            "htmlContent", "showHeader", "readOnly", "theme",
        }
        assert record["data"] == {"name": "Source", "params": {"gain": 0.5}}
        assert record["input"] is None
        assert record["output"] == {"id": "out", "name": "Out", "limit": 1, "color": "#f00"}

    def test_connection_record_fields(self, store):
        build_sample(store)
        record = store.to_document()["connections"][0]
        assert record == {
            "id": "conn-1",
            "sourceNodeId": "A",
            "sourceOutputId": "A-out",
            "targetNodeId": "C",
            "targetInputId": "C-in",
            "labelHtmlContent": "<b>label</b>",
        }

    def test_unbounded_limit_is_null(self, store):
        build_sample(store)
        text = dumps(store.to_document())
        assert json.loads(text)["nodes"][1]["input"]["limit"] is None

    def test_document_is_detached(self, store):
        build_sample(store)
        doc = store.to_document()
        doc["nodes"][0]["data"]["params"]["gain"] = 9
        assert store.get_node("A").data["params"]["gain"] == 0.5


class TestRoundTrip:

    def test_round_trip(self, store):
        build_sample(store)
        doc = store.to_document()

        restored = GraphStore()
        restored.load_document(loads(dumps(doc)))

        assert restored.to_document() == doc
        assert restored.get_all_nodes() == store.get_all_nodes()
        assert restored.get_all_connections() == store.get_all_connections()

    def test_round_trip_through_file(self, store, tmp_path):
        build_sample(store)
        path = store.save(tmp_path / "graph.json")

        restored = GraphStore()
        restored.load(path)

        assert restored.to_document() == store.to_document()

    def test_ids_continue_after_reload(self, store):
        build_sample(store)
        restored = GraphStore()
        restored.load_document(store.to_document())

        restored.add_node(id="node-1")
        assert restored.add_node().id == "node-2"
        restored.set_node_read_only("B", False)
        conn = restored.add_connection("B", "B-out", "C", "C-in")
        assert conn.id == "conn-2"


class TestLoadDocument:
    """Tests for GraphStore.load_document."""

    def test_replaces_state(self, store):
        store.add_node(id="old")
        store.load_document(minimal_doc())

        assert [node.id for node in store.get_all_nodes()] == ["A", "B"]
        assert "old" not in store
        assert store.get_node("B").incoming[0].id == "conn-1"

    def test_normalizes_ports(self, store):
        store.load_document(minimal_doc())
        a = store.get_node("A")
        assert a.output.name == "Output"
        assert a.output.limit is None
        assert a.show_header is True
        assert a.read_only is False
        assert a.theme == {}

    def test_single_reload_event(self, store, recorder):
        store.load_document(minimal_doc())
        assert recorder == [("graphReloaded", ())]

    def test_handler_sees_new_state(self, store):
        seen = []
        store.events.subscribe(GraphEvent.GRAPH_RELOADED, lambda: seen.append(len(store)))
        store.load_document(minimal_doc())
        assert seen == [2]

    def test_connections_without_limits_enforced(self, store):
        doc = minimal_doc()
        doc["nodes"][0]["output"]["limit"] = 1
        doc["connections"].append({
            "id": "conn-2",
            "sourceNodeId": "A",
            "sourceOutputId": "A-out",
            "targetNodeId": "B",
            "targetInputId": "B-in",
        })
        store.load_document(doc)
        assert len(store.get_all_connections()) == 2

    @pytest.mark.parametrize("doc", [
        None,
        [],
        {"connections": []},
        {"nodes": {}},
        {"nodes": [], "connections": "x"},
        {"nodes": ["A"]},
        {"nodes": [{"x": 0, "y": 0}]},
        {"nodes": [{"id": "A", "x": "0", "y": 0}]},
        {"nodes": [{"id": "A", "x": True, "y": 0}]},
        {"nodes": [{"id": "A", "x": 0, "y": 0, "data": []}]},
        {"nodes": [{"id": "A", "x": 0, "y": 0, "input": "in"}]},
        {"nodes": [{"id": "A", "x": 0, "y": 0}, {"id": "A", "x": 1, "y": 1}]},
        {"nodes": [], "version": DOCUMENT_VERSION + 1},
        {"nodes": [], "version": "1"},
    ])
    def test_malformed_raises(self, store, doc):
        with pytest.raises(DocumentError):
            store.load_document(doc)

    def test_unknown_connection_endpoint(self, store):
        doc = minimal_doc()
        doc["connections"][0]["targetNodeId"] = "Z"
        with pytest.raises(DocumentError, match="unknown node Z"):
            store.load_document(doc)

    def test_duplicate_connection_id(self, store):
        doc = minimal_doc()
        doc["connections"].append(dict(doc["connections"][0]))
        with pytest.raises(DocumentError, match="Duplicate connection id"):
            store.load_document(doc)

    def test_failed_load_keeps_previous_graph(self, store, recorder):
        store.add_node(id="keep")
        recorder.clear()

        with pytest.raises(DocumentError):
            store.load_document({"nodes": [{"id": "A"}]})

        assert [node.id for node in store.get_all_nodes()] == ["keep"]
        assert recorder == []

    def test_document_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_document("not a document")


class TestFiles:
    """Tests for JSON text and file helpers."""

    def test_loads_invalid_json(self):
        with pytest.raises(DocumentError, match="Failed to parse"):
            loads("{nodes: ")

    def test_save_and_read(self, tmp_path):
        doc = minimal_doc()
        path = save_document(doc, tmp_path / "doc.json")
        assert read_document(path) == doc

    def test_read_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_document(tmp_path / "missing.json")

    def test_read_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(DocumentError, match="broken.json"):
            read_document(path)

    def test_store_load_missing(self, store, tmp_path):
        with pytest.raises(FileNotFoundError):
            store.load(tmp_path / "missing.json")

    def test_save_uses_settings_indent(self, tmp_path):
        from flowly.core.settings import EngineSettings

        store = GraphStore(EngineSettings(indent=None))
        store.add_node(id="A")
        path = store.save(tmp_path / "compact.json")
        assert "\n" not in path.read_text(encoding="utf-8")
