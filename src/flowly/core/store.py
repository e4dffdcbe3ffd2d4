"""
Graph Store - The authoritative in-memory model of a flow graph.

The GraphStore owns every Node and Connection, validates all mutations,
and publishes a notification through its EventChannel for each change.

Validation failures never raise. Mutating operations return None/False,
log a warning, and record a Rejection in ``last_rejection``. Only a
malformed document passed to load_document raises (DocumentError).

The store performs no locking; all access must come from one thread of
control at a time.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Mapping

from flowly.core.document import (
    build_document,
    parse_document,
    read_document,
    save_document,
)
from flowly.core.events import EventChannel, GraphEvent
from flowly.core.graph import (
    INPUT,
    OUTPUT,
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
    optional_text,
    port_id_from_ref,
)
from flowly.core.settings import EngineSettings


logger = logging.getLogger(__name__)


class GraphStore:
    """
    Sole owner of node and connection state.

    Callers never receive stored entities: queries and events carry
    copies (NodeSnapshot, Connection copies) so the store stays the
    single source of truth.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        channel: EventChannel | None = None,
    ):
        self.settings = settings or EngineSettings()
        self.events = channel if channel is not None else EventChannel()
        self._nodes: dict[str, Node] = {}
        self._connections: dict[str, Connection] = {}
        self._next_node_id = 1
        self._next_connection_id = 1
        self._read_only = self.settings.read_only
        self.last_rejection: Rejection | None = None

    # --- Read-only state ---

    @property
    def global_read_only(self) -> bool:
        return self._read_only

    def set_global_read_only(self, flag: bool) -> None:
        """Toggle the store-wide read-only switch."""
        flag = bool(flag)
        if flag == self._read_only:
            return
        self._read_only = flag
        logger.debug("Global read-only set to %s", flag)
        self.events.publish(GraphEvent.READ_ONLY_CHANGED, flag)

    def is_locked(self, node: Node) -> bool:
        """A node is locked when the store or the node itself is read-only."""
        return self._read_only or node.read_only

    def _reject(self, reason: RejectionReason, message: str) -> None:
        self.last_rejection = Rejection(reason, message)
        logger.warning(message)

    def _check_writable(self, action: str) -> bool:
        self.last_rejection = None
        if self._read_only:
            self._reject(
                RejectionReason.READ_ONLY,
                f"Graph is read-only. Cannot {action}.",
            )
            return False
        return True

    def _lookup_unlocked(self, node_id: str, action: str) -> Node | None:
        """Find a node that may be mutated, rejecting otherwise."""
        node = self._nodes.get(node_id)
        if node is None:
            self._reject(
                RejectionReason.NODE_NOT_FOUND,
                f"Node {node_id} not found. Cannot {action}.",
            )
            return None
        if self.is_locked(node):
            self._reject(
                RejectionReason.NODE_READ_ONLY,
                f"Node {node_id} is read-only. Cannot {action}.",
            )
            return None
        return node

    # --- Id generation ---

    def generate_node_id(self, preferred: str | None = None) -> str:
        """
        Get an id for a new node.

        Returns ``preferred`` if given and unused, otherwise the next free
        "<prefix>-<n>" value.
        """
        if preferred is not None:
            preferred = str(preferred)
        if preferred and preferred not in self._nodes:
            return preferred
        prefix = self.settings.node_id_prefix
        while True:
            candidate = f"{prefix}-{self._next_node_id}"
            self._next_node_id += 1
            if candidate not in self._nodes:
                return candidate

    def _generate_connection_id(self) -> str:
        prefix = self.settings.connection_id_prefix
        while True:
            candidate = f"{prefix}-{self._next_connection_id}"
            self._next_connection_id += 1
            if candidate not in self._connections:
                return candidate

    # --- Snapshots ---

    def _snapshot(self, node: Node) -> NodeSnapshot:
        lists = self._connections_of(node.id)
        return NodeSnapshot.of(node, lists.incoming, lists.outgoing)

    def _connections_of(self, node_id: str) -> ConnectionLists:
        incoming: list[Connection] = []
        outgoing: list[Connection] = []
        for conn in self._connections.values():
            if conn.target_node_id == node_id:
                incoming.append(conn)
            if conn.source_node_id == node_id:
                outgoing.append(conn)
        return ConnectionLists(incoming, outgoing)

    def _connection_change(
        self, connection: Connection, *detached: Node
    ) -> ConnectionChange:
        """Build an event payload, resolving endpoints that left the store."""
        def resolve(node_id: str) -> NodeSnapshot | None:
            node = self._nodes.get(node_id)
            if node is None:
                node = next((n for n in detached if n.id == node_id), None)
            return self._snapshot(node) if node else None

        return ConnectionChange(
            connection=connection.copy(),
            source_node=resolve(connection.source_node_id),
            target_node=resolve(connection.target_node_id),
        )

    # --- Node operations ---

    def add_node(self, config: NodeConfig | None = None, **fields: Any) -> NodeSnapshot | None:
        """
        Create a node from a NodeConfig (or the same fields as keywords).

        Returns the created node's snapshot, or None if the graph is
        read-only.
        """
        if config is None:
            config = NodeConfig(**fields)
        elif fields:
            raise TypeError("Pass either a NodeConfig or keyword fields, not both")

        if not self._check_writable("add node"):
            return None

        data = copy.deepcopy(config.data) if config.data else {}
        if "name" not in data and config.name is not None:
            data["name"] = config.name

        node = Node(
            id=self.generate_node_id(config.id),
            x=float(config.x),
            y=float(config.y),
            data=data,
            input=Port.from_value(config.input, INPUT),
            output=Port.from_value(config.output, OUTPUT),
            html_content=optional_text(config.html_content),
            show_header=bool(config.show_header),
            read_only=bool(config.read_only),
            theme=copy.deepcopy(config.theme) if config.theme else {},
        )
        if config.id is not None and node.id != str(config.id):
            logger.debug("Node id %s is taken, using %s", config.id, node.id)

        self._nodes[node.id] = node
        snapshot = self._snapshot(node)
        self.events.publish(GraphEvent.NODE_CREATED, snapshot)
        return snapshot

    def remove_node(self, node_id: str) -> bool:
        """
        Remove a node and every connection attached to it.

        Each cascaded connection removal publishes its own event before
        the node removal event, which carries the pre-removal snapshot.
        """
        if not self._check_writable("remove node"):
            return False
        node = self._lookup_unlocked(node_id, "remove node")
        if node is None:
            return False

        snapshot = self._snapshot(node)
        del self._nodes[node_id]

        attached = [conn for conn in self._connections.values() if conn.touches(node_id)]
        for conn in attached:
            # A handler may already have removed it mid-cascade
            if self._connections.pop(conn.id, None) is None:
                continue
            self.events.publish(
                GraphEvent.CONNECTION_REMOVED, self._connection_change(conn, node)
            )

        self.events.publish(GraphEvent.NODE_REMOVED, snapshot)
        return True

    def update_node_position(self, node_id: str, x: float, y: float) -> bool:
        """Move a node. Connections are not affected."""
        if not self._check_writable("move node"):
            return False
        node = self._lookup_unlocked(node_id, "move node")
        if node is None:
            return False

        node.set_position(x, y)
        self.events.publish(GraphEvent.NODE_UPDATED, self._snapshot(node))
        return True

    def update_node(
        self, node_id: str, patch: NodePatch | None = None, **fields: Any
    ) -> NodeSnapshot | None:
        """
        Apply a partial update to a node.

        Existing connections are never re-validated, even when a port
        limit shrinks below the current connection count.

        Returns the updated snapshot, or None if the update was refused.
        """
        if patch is None:
            patch = NodePatch(**fields)
        elif fields:
            raise TypeError("Pass either a NodePatch or keyword fields, not both")

        if not self._check_writable("update node"):
            return None
        node = self._lookup_unlocked(node_id, "update node")
        if node is None:
            return None

        if patch.data is not UNSET:
            node.data.update(copy.deepcopy(dict(patch.data)))
        if patch.name is not UNSET:
            node.data["name"] = patch.name
        if patch.input is not UNSET:
            node.input = self._merge_port(node.input, patch.input, INPUT)
        if patch.output is not UNSET:
            node.output = self._merge_port(node.output, patch.output, OUTPUT)
        if patch.x is not UNSET:
            node.x = float(patch.x)
        if patch.y is not UNSET:
            node.y = float(patch.y)
        if patch.html_content is not UNSET:
            node.html_content = optional_text(patch.html_content)
        if patch.show_header is not UNSET:
            node.show_header = bool(patch.show_header)
        if patch.theme is not UNSET:
            node.theme.update(copy.deepcopy(dict(patch.theme)))

        snapshot = self._snapshot(node)
        self.events.publish(GraphEvent.NODE_UPDATED, snapshot)
        return snapshot

    @staticmethod
    def _merge_port(
        current: Port | None, patch: Port | Mapping[str, Any] | None, direction: str
    ) -> Port | None:
        if patch is None:
            return None
        if isinstance(patch, Port):
            patch = patch.to_dict()
        if current is None:
            return Port.from_value(patch, direction)
        return current.merged(patch, direction)

    def set_node_read_only(self, node_id: str, flag: bool) -> bool:
        """
        Lock or unlock a single node.

        Only the global flag blocks this, so a locked node can be unlocked.
        """
        if not self._check_writable("change node read-only state"):
            return False
        node = self._nodes.get(node_id)
        if node is None:
            self._reject(
                RejectionReason.NODE_NOT_FOUND,
                f"Node {node_id} not found. Cannot change read-only state.",
            )
            return False

        node.read_only = bool(flag)
        self.events.publish(GraphEvent.NODE_UPDATED, self._snapshot(node))
        return True

    # --- Connection operations ---

    def add_connection(
        self,
        source_node_id: str,
        source_output_id: str,
        target_node_id: str,
        target_input_id: str,
        label_html_content: str | None = None,
    ) -> Connection | None:
        """
        Connect a source node's output port to a target node's input port.

        Checks, in order: read-only state, endpoint existence, port
        identity, output capacity, input capacity, duplicates, self-loops.
        A capacity failure also publishes connectionLimitReached.

        Returns a copy of the new connection, or None if refused.
        """
        if not self._check_writable("add connection"):
            return None

        source = self._nodes.get(source_node_id)
        target = self._nodes.get(target_node_id)
        for node in (source, target):
            if node is not None and node.read_only:
                self._reject(
                    RejectionReason.NODE_READ_ONLY,
                    f"Node {node.id} is read-only. Cannot connect it.",
                )
                return None
        if source is None or target is None:
            missing = source_node_id if source is None else target_node_id
            self._reject(
                RejectionReason.NODE_NOT_FOUND,
                f"Node {missing} not found for connection.",
            )
            return None

        output = source.output
        if output is None or port_id_from_ref(source.id, source_output_id) != output.id:
            self._reject(
                RejectionReason.PORT_MISMATCH,
                f"Node {source.id} has no output port {source_output_id}.",
            )
            return None
        input_port = target.input
        if input_port is None or port_id_from_ref(target.id, target_input_id) != input_port.id:
            self._reject(
                RejectionReason.PORT_MISMATCH,
                f"Node {target.id} has no input port {target_input_id}.",
            )
            return None

        if not self._has_capacity(source, output, OUTPUT, source_output_id):
            return None
        if not self._has_capacity(target, input_port, INPUT, target_input_id):
            return None

        key = (source_node_id, source_output_id, target_node_id, target_input_id)
        if any(conn.key == key for conn in self._connections.values()):
            self._reject(
                RejectionReason.DUPLICATE_CONNECTION,
                f"Connection {source_output_id} -> {target_input_id} already exists.",
            )
            return None

        if source_node_id == target_node_id:
            self._reject(
                RejectionReason.SELF_LOOP,
                f"Cannot connect node {source_node_id} to itself.",
            )
            return None

        connection = Connection(
            id=self._generate_connection_id(),
            source_node_id=source_node_id,
            source_output_id=source_output_id,
            target_node_id=target_node_id,
            target_input_id=target_input_id,
            label_html_content=optional_text(label_html_content),
        )
        self._connections[connection.id] = connection
        self.events.publish(
            GraphEvent.CONNECTION_CREATED, self._connection_change(connection)
        )
        return connection.copy()

    def _has_capacity(self, node: Node, port: Port, direction: str, ref: str) -> bool:
        if port.limit is None:
            return True

        if direction == OUTPUT:
            count = sum(
                1 for conn in self._connections.values()
                if conn.source_node_id == node.id and conn.source_output_id == ref
            )
            reason = RejectionReason.OUTPUT_LIMIT_REACHED
        else:
            count = sum(
                1 for conn in self._connections.values()
                if conn.target_node_id == node.id and conn.target_input_id == ref
            )
            reason = RejectionReason.INPUT_LIMIT_REACHED

        if count < port.limit:
            return True

        self._reject(
            reason,
            f"Connection limit ({port.limit}) reached for {direction} {ref}.",
        )
        self.events.publish(
            GraphEvent.CONNECTION_LIMIT_REACHED,
            PortLimitReached(self._snapshot(node), port.copy(), direction, count),
        )
        return False

    def remove_connection(self, connection_id: str) -> bool:
        """
        Remove a connection by id.

        Node read-only flags do not block this; only the global flag does.
        """
        if not self._check_writable("remove connection"):
            return False
        connection = self._connections.get(connection_id)
        if connection is None:
            self._reject(
                RejectionReason.CONNECTION_NOT_FOUND,
                f"Connection {connection_id} not found.",
            )
            return False

        change = self._connection_change(connection)
        del self._connections[connection_id]
        self.events.publish(GraphEvent.CONNECTION_REMOVED, change)
        return True

    def update_connection_label(self, connection_id: str, label: str | None) -> bool:
        """Set the label payload of a connection."""
        if not self._check_writable("update connection label"):
            return False
        connection = self._connections.get(connection_id)
        if connection is None:
            self._reject(
                RejectionReason.CONNECTION_NOT_FOUND,
                f"Connection {connection_id} not found.",
            )
            return False

        connection.label_html_content = optional_text(label)
        self.events.publish(
            GraphEvent.CONNECTION_LABEL_CHANGED, self._connection_change(connection)
        )
        return True

    # --- Queries ---

    def get_connections_of(self, node_id: str) -> ConnectionLists:
        """Get copies of the connections entering and leaving a node."""
        lists = self._connections_of(node_id)
        return ConnectionLists(
            incoming=[conn.copy() for conn in lists.incoming],
            outgoing=[conn.copy() for conn in lists.outgoing],
        )

    def get_node(self, node_id: str) -> NodeSnapshot | None:
        """Get a node snapshot by id."""
        node = self._nodes.get(node_id)
        return self._snapshot(node) if node else None

    def get_all_nodes(self) -> list[NodeSnapshot]:
        """Get snapshots of every node, in insertion order."""
        return [self._snapshot(node) for node in self._nodes.values()]

    def get_connection(self, connection_id: str) -> Connection | None:
        connection = self._connections.get(connection_id)
        return connection.copy() if connection else None

    def get_all_connections(self) -> list[Connection]:
        """Get copies of every connection, in insertion order."""
        return [conn.copy() for conn in self._connections.values()]

    def get_neighbors(self, node_id: str) -> list[NodeSnapshot]:
        """Get the nodes directly connected to ``node_id`` in either direction."""
        neighbor_ids: dict[str, None] = {}
        for conn in self._connections.values():
            if conn.source_node_id == node_id:
                neighbor_ids.setdefault(conn.target_node_id)
            elif conn.target_node_id == node_id:
                neighbor_ids.setdefault(conn.source_node_id)
        neighbor_ids.pop(node_id, None)
        return [
            self._snapshot(self._nodes[nid])
            for nid in neighbor_ids
            if nid in self._nodes
        ]

    # --- Copy / paste ---

    def copy_node(self, node_id: str) -> NodeConfig | None:
        """
        Capture a node as a detached NodeConfig.

        The id and read-only flag are not copied. Allowed while read-only.
        """
        node = self._nodes.get(node_id)
        if node is None:
            logger.warning("Node %s not found. Cannot copy.", node_id)
            return None

        config = NodeConfig(
            x=node.x,
            y=node.y,
            data=copy.deepcopy(node.data),
            input=node.input.to_dict() if node.input else None,
            output=node.output.to_dict() if node.output else None,
            html_content=node.html_content,
            show_header=node.show_header,
            theme=copy.deepcopy(node.theme),
        )
        self.events.publish(GraphEvent.NODE_COPIED, self._snapshot(node))
        return config

    def paste_node(self, config: NodeConfig, x: float, y: float) -> NodeSnapshot | None:
        """Add a new node from a copied config at the given position."""
        pasted = NodeConfig(
            x=x,
            y=y,
            name=config.name,
            data=config.data,
            input=config.input,
            output=config.output,
            html_content=config.html_content,
            show_header=config.show_header,
            theme=config.theme,
        )
        snapshot = self.add_node(pasted)
        if snapshot is not None:
            self.events.publish(GraphEvent.NODE_PASTED, snapshot)
        return snapshot

    # --- Serialization ---

    def to_document(self) -> dict[str, Any]:
        """Serialize every node and connection to a document."""
        return build_document(self._nodes.values(), self._connections.values())

    def load_document(self, doc: Mapping[str, Any]) -> None:
        """
        Replace the whole graph with the contents of ``doc``.

        The document is validated before any state changes, so the current
        graph survives a malformed document. Ignores the read-only flag.

        Raises:
            DocumentError: If the document is malformed.
        """
        nodes, connections = parse_document(doc)

        self._nodes = {node.id: node for node in nodes}
        self._connections = {conn.id: conn for conn in connections}
        self._next_node_id = 1
        self._next_connection_id = 1

        logger.info(
            "Loaded graph with %d nodes and %d connections",
            len(self._nodes), len(self._connections),
        )
        self.events.publish(GraphEvent.GRAPH_RELOADED)

    def save(self, path: Path) -> Path:
        """Save the graph as a JSON document."""
        return save_document(self.to_document(), path, indent=self.settings.indent)

    def load(self, path: Path) -> None:
        """
        Load the graph from a JSON document file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            DocumentError: If the document is malformed
        """
        self.load_document(read_document(path))

    # --- Utility ---

    def __len__(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self._nodes
