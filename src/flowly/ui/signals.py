"""
Graph Signals - Qt signal bridge for GraphStore events.

Renderers built on Qt connect to these signals instead of subscribing
to the store's EventChannel directly. The bridge holds no graph state;
slots re-query the store (or use the snapshot payloads) to redraw.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from PySide6.QtCore import QObject, Signal

from flowly.core.events import GraphEvent

if TYPE_CHECKING:
    from flowly.core.store import GraphStore


logger = logging.getLogger(__name__)


class GraphSignals(QObject):
    """
    Re-emits GraphStore events as Qt signals.

    Signals:
        node_created(NodeSnapshot)
        node_removed(NodeSnapshot)
        node_updated(NodeSnapshot)
        connection_created(ConnectionChange)
        connection_removed(ConnectionChange)
        connection_label_changed(ConnectionChange)
        connection_limit_reached(PortLimitReached)
        graph_reloaded()
        read_only_changed(bool)
        node_copied(NodeSnapshot)
        node_pasted(NodeSnapshot)
    """

    node_created = Signal(object)
    node_removed = Signal(object)
    node_updated = Signal(object)
    connection_created = Signal(object)
    connection_removed = Signal(object)
    connection_label_changed = Signal(object)
    connection_limit_reached = Signal(object)
    graph_reloaded = Signal()
    read_only_changed = Signal(bool)
    node_copied = Signal(object)
    node_pasted = Signal(object)

    _SIGNAL_NAMES = {
        GraphEvent.NODE_CREATED: "node_created",
        GraphEvent.NODE_REMOVED: "node_removed",
        GraphEvent.NODE_UPDATED: "node_updated",
        GraphEvent.CONNECTION_CREATED: "connection_created",
        GraphEvent.CONNECTION_REMOVED: "connection_removed",
        GraphEvent.CONNECTION_LABEL_CHANGED: "connection_label_changed",
        GraphEvent.CONNECTION_LIMIT_REACHED: "connection_limit_reached",
        GraphEvent.GRAPH_RELOADED: "graph_reloaded",
        GraphEvent.READ_ONLY_CHANGED: "read_only_changed",
        GraphEvent.NODE_COPIED: "node_copied",
        GraphEvent.NODE_PASTED: "node_pasted",
    }

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._store: GraphStore | None = None
        self._handlers: list[tuple[GraphEvent, Callable[..., Any]]] = []

    @property
    def store(self) -> GraphStore | None:
        return self._store

    def attach(self, store: GraphStore) -> None:
        """Forward every event of ``store`` to the matching signal."""
        if self._store is not None:
            self.detach()

        for event, signal_name in self._SIGNAL_NAMES.items():
            handler = self._make_forwarder(signal_name)
            store.events.subscribe(event, handler)
            self._handlers.append((event, handler))

        self._store = store
        logger.debug("Attached graph signals to store %s", id(store))

    def detach(self) -> None:
        """Stop forwarding events from the attached store."""
        if self._store is None:
            return
        for event, handler in self._handlers:
            self._store.events.unsubscribe(event, handler)
        self._handlers.clear()
        self._store = None

    def _make_forwarder(self, signal_name: str) -> Callable[..., None]:
        def forward(*payload: Any) -> None:
            getattr(self, signal_name).emit(*payload)
        return forward
