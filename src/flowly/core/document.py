"""
Graph Documents - Serialize flow graphs to and from a portable format.

A document is a JSON-compatible mapping:

    {
        "version": 1,
        "nodes": [{id, x, y, data, input, output, htmlContent,
                   showHeader, readOnly, theme}, ...],
        "connections": [{id, sourceNodeId, sourceOutputId, targetNodeId,
                         targetInputId, labelHtmlContent}, ...],
    }

Unbounded port limits are written as null. Parsing validates the whole
document before anything is returned, so a caller can swap state only
after a successful parse.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Iterable, Mapping

from flowly.core.graph import INPUT, OUTPUT, Connection, Node, Port


DOCUMENT_VERSION = 1


class DocumentError(ValueError):
    """Raised when a graph document is malformed."""


# --- Writing ---

def node_to_record(node: Node) -> dict[str, Any]:
    """Convert a node to its document record."""
    return {
        "id": node.id,
        "x": node.x,
        "y": node.y,
        "data": copy.deepcopy(node.data),
        "input": node.input.to_dict() if node.input else None,
        "output": node.output.to_dict() if node.output else None,
        "htmlContent": node.html_content,
        "showHeader": node.show_header,
        "readOnly": node.read_only,
        "theme": copy.deepcopy(node.theme),
    }


def connection_to_record(connection: Connection) -> dict[str, Any]:
    """Convert a connection to its document record."""
    return {
        "id": connection.id,
        "sourceNodeId": connection.source_node_id,
        "sourceOutputId": connection.source_output_id,
        "targetNodeId": connection.target_node_id,
        "targetInputId": connection.target_input_id,
        "labelHtmlContent": connection.label_html_content,
    }


def build_document(
    nodes: Iterable[Node], connections: Iterable[Connection]
) -> dict[str, Any]:
    """Build a document from nodes and connections."""
    return {
        "version": DOCUMENT_VERSION,
        "nodes": [node_to_record(node) for node in nodes],
        "connections": [connection_to_record(conn) for conn in connections],
    }


# --- Reading ---

def _require(record: Mapping[str, Any], key: str, kind: str, index: int) -> Any:
    if key not in record:
        raise DocumentError(f"{kind} #{index} is missing '{key}'")
    return record[key]


def _require_str(record: Mapping[str, Any], key: str, kind: str, index: int) -> str:
    value = _require(record, key, kind, index)
    if not isinstance(value, str) or not value:
        raise DocumentError(f"{kind} #{index}: '{key}' must be a non-empty string")
    return value


def _number(record: Mapping[str, Any], key: str, index: int) -> float:
    value = _require(record, key, "Node", index)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DocumentError(f"Node #{index}: '{key}' must be a number")
    return float(value)


def _mapping(value: Any, key: str, index: int) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise DocumentError(f"Node #{index}: '{key}' must be an object")
    return copy.deepcopy(dict(value))


def _port(value: Any, direction: str, index: int) -> Port | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise DocumentError(f"Node #{index}: '{direction}' must be an object or null")
    return Port.from_value(value, direction)


def _optional_str(record: Mapping[str, Any], key: str, kind: str, index: int) -> str | None:
    value = record.get(key)
    if value is not None and not isinstance(value, str):
        raise DocumentError(f"{kind} #{index}: '{key}' must be a string or null")
    return value


def node_from_record(record: Any, index: int = 0) -> Node:
    """
    Rebuild a node from its document record.

    Raises:
        DocumentError: If the record is malformed.
    """
    if not isinstance(record, Mapping):
        raise DocumentError(f"Node #{index} must be an object")

    return Node(
        id=_require_str(record, "id", "Node", index),
        x=_number(record, "x", index),
        y=_number(record, "y", index),
        data=_mapping(record.get("data"), "data", index),
        input=_port(record.get("input"), INPUT, index),
        output=_port(record.get("output"), OUTPUT, index),
        html_content=_optional_str(record, "htmlContent", "Node", index),
        show_header=bool(record.get("showHeader", True)),
        read_only=bool(record.get("readOnly", False)),
        theme=_mapping(record.get("theme"), "theme", index),
    )


def connection_from_record(record: Any, index: int = 0) -> Connection:
    """
    Rebuild a connection from its document record.

    Raises:
        DocumentError: If the record is malformed.
    """
    if not isinstance(record, Mapping):
        raise DocumentError(f"Connection #{index} must be an object")

    return Connection(
        id=_require_str(record, "id", "Connection", index),
        source_node_id=_require_str(record, "sourceNodeId", "Connection", index),
        source_output_id=_require_str(record, "sourceOutputId", "Connection", index),
        target_node_id=_require_str(record, "targetNodeId", "Connection", index),
        target_input_id=_require_str(record, "targetInputId", "Connection", index),
        label_html_content=_optional_str(record, "labelHtmlContent", "Connection", index),
    )


def parse_document(doc: Any) -> tuple[list[Node], list[Connection]]:
    """
    Parse and validate a document.

    Returns:
        The nodes and connections, in document order.

    Raises:
        DocumentError: If the document is malformed, uses a newer version,
            repeats an id, or has a connection to an unknown node.
    """
    if not isinstance(doc, Mapping):
        raise DocumentError("Document must be an object")

    version = doc.get("version", DOCUMENT_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        raise DocumentError(f"Invalid document version: {version!r}")
    if version > DOCUMENT_VERSION:
        raise DocumentError(f"Unsupported document version: {version}")

    node_records = doc.get("nodes")
    connection_records = doc.get("connections", [])
    if not isinstance(node_records, list):
        raise DocumentError("Document 'nodes' must be a list")
    if not isinstance(connection_records, list):
        raise DocumentError("Document 'connections' must be a list")

    nodes: list[Node] = []
    node_ids: set[str] = set()
    for i, record in enumerate(node_records):
        node = node_from_record(record, i)
        if node.id in node_ids:
            raise DocumentError(f"Duplicate node id: {node.id}")
        node_ids.add(node.id)
        nodes.append(node)

    connections: list[Connection] = []
    connection_ids: set[str] = set()
    for i, record in enumerate(connection_records):
        conn = connection_from_record(record, i)
        if conn.id in connection_ids:
            raise DocumentError(f"Duplicate connection id: {conn.id}")
        for node_id in (conn.source_node_id, conn.target_node_id):
            if node_id not in node_ids:
                raise DocumentError(
                    f"Connection {conn.id} references unknown node {node_id}"
                )
        connection_ids.add(conn.id)
        connections.append(conn)

    return nodes, connections


# --- Text and files ---

def dumps(doc: Mapping[str, Any], indent: int | None = 2) -> str:
    """Serialize a document to JSON text."""
    return json.dumps(doc, indent=indent)


def loads(text: str) -> dict[str, Any]:
    """
    Parse JSON text into a document mapping.

    Raises:
        DocumentError: If the text is not valid JSON.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DocumentError(f"Failed to parse document: {e}") from e


def save_document(doc: Mapping[str, Any], path: Path, indent: int | None = 2) -> Path:
    """
    Save a document to disk.

    Returns:
        Path where the document was saved
    """
    with open(path, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=indent)

    return path


def read_document(path: Path) -> dict[str, Any]:
    """
    Read a document from disk.

    Only the JSON is checked here; the structure is validated by
    parse_document when the document is loaded into a store.

    Raises:
        FileNotFoundError: If the file doesn't exist
        DocumentError: If the file is not valid JSON
    """
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        text = f.read()

    try:
        return loads(text)
    except DocumentError as e:
        raise DocumentError(f"Invalid document {path}: {e}") from e
