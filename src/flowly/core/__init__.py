"""
Core module - Graph model, store, events, and persistence.

This module provides the fundamental building blocks for Flowly:
- Graph: Node, port, and connection records
- Events: The notification channel the store publishes on
- Store: The GraphStore that owns and validates the graph
- Document: Portable document format and JSON persistence
- Settings: Engine configuration
"""

from flowly.core.graph import (
    UNSET,
    Connection,
    ConnectionChange,
    ConnectionLists,
    Node,
    NodeConfig,
    NodePatch,
    NodeSnapshot,
    Port,
    PortLimitReached,
    Rejection,
    RejectionReason,
    normalize_limit,
    port_id_from_ref,
    port_ref,
)

from flowly.core.events import (
    EventChannel,
    GraphEvent,
)

from flowly.core.document import (
    DOCUMENT_VERSION,
    DocumentError,
    build_document,
    dumps,
    loads,
    parse_document,
    read_document,
    save_document,
)

from flowly.core.settings import EngineSettings

from flowly.core.store import GraphStore


__all__ = [
    # graph.py
    "UNSET",
    "Connection",
    "ConnectionChange",
    "ConnectionLists",
    "Node",
    "NodeConfig",
    "NodePatch",
    "NodeSnapshot",
    "Port",
    "PortLimitReached",
    "Rejection",
    "RejectionReason",
    "normalize_limit",
    "port_id_from_ref",
    "port_ref",
    # events.py
    "EventChannel",
    "GraphEvent",
    # document.py
    "DOCUMENT_VERSION",
    "DocumentError",
    "build_document",
    "dumps",
    "loads",
    "parse_document",
    "read_document",
    "save_document",
    # settings.py
    "EngineSettings",
    # store.py
    "GraphStore",
]
