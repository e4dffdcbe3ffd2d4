"""
Flow Graph Model - Entity types for the flow graph engine.

This module defines the plain records the GraphStore owns:
- Port: A capacity-limited attachment point on a node
- Node: A positioned entity with data, ports, and display flags
- Connection: A directed link from an output port to an input port

It also holds the read-only views handed to callers and observers
(NodeSnapshot, ConnectionChange, PortLimitReached) and the explicit
partial-update structure used by GraphStore.update_node (NodePatch).
"""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


INPUT = "input"
OUTPUT = "output"

_PORT_DEFAULTS = {
    INPUT: ("input", "Input"),
    OUTPUT: ("output", "Output"),
}


class _Unset(Enum):
    TOKEN = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


# Marks a NodePatch field that should be left alone
UNSET = _Unset.TOKEN

_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def port_ref(node_id: str, port_id: str) -> str:
    """Build the "<nodeId>-<portId>" reference used by connections."""
    return f"{node_id}-{port_id}"


def port_id_from_ref(node_id: str, ref: str) -> str | None:
    """
    Extract the port id from a port reference owned by ``node_id``.

    Returns None if the reference does not belong to the node.
    """
    prefix = f"{node_id}-"
    if not isinstance(ref, str) or not ref.startswith(prefix):
        return None
    return ref[len(prefix):]


def optional_text(value: Any) -> str | None:
    """Coerce a stored text payload to str, keeping None."""
    return None if value is None else str(value)


def normalize_limit(value: Any) -> int | None:
    """
    Normalize a port limit to a positive integer, or None for unbounded.

    Strings are read by their leading integer ("5px" -> 5, "3.7" -> 3).
    Missing, unparseable, non-positive and infinite values are unbounded.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        value = int(value)
    elif not isinstance(value, int):
        match = _LEADING_INT.match(str(value))
        if match is None:
            return None
        value = int(match.group(0))
    return value if value > 0 else None


@dataclass(frozen=True)
class Port:
    """A named, capacity-limited attachment point on a node."""
    id: str
    name: str
    limit: int | None = None  # None = unbounded
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Port | Mapping[str, Any] | None, direction: str) -> Port | None:
        """
        Build a normalized port from a Port or a descriptor mapping.

        Missing id/name fall back to "input"/"Input" or "output"/"Output".
        """
        if value is None:
            return None
        if isinstance(value, Port):
            value = value.to_dict()
        default_id, default_name = _PORT_DEFAULTS[direction]
        extra = {
            k: copy.deepcopy(v) for k, v in value.items()
            if k not in ("id", "name", "limit")
        }
        return cls(
            id=str(value.get("id") or default_id),
            name=str(value.get("name") or default_name),
            limit=normalize_limit(value.get("limit")),
            extra=extra,
        )

    def merged(self, patch: Mapping[str, Any], direction: str) -> Port:
        """Return a new port with ``patch`` shallow-merged over this one."""
        merged = self.to_dict()
        merged.update(patch)
        return Port.from_value(merged, direction)

    def copy(self) -> Port:
        """Return an equal port that shares no mutable state with this one."""
        return Port(self.id, self.name, self.limit, copy.deepcopy(self.extra))

    @property
    def unbounded(self) -> bool:
        return self.limit is None

    def to_dict(self) -> dict[str, Any]:
        data = copy.deepcopy(self.extra)
        data.update({"id": self.id, "name": self.name, "limit": self.limit})
        return data


@dataclass
class Connection:
    """
    A connection between one node's output port and another's input port.

    The port ids follow the "<nodeId>-<portId>" convention.
    """
    id: str
    source_node_id: str
    source_output_id: str
    target_node_id: str
    target_input_id: str
    label_html_content: str | None = None

    @property
    def key(self) -> tuple[str, str, str, str]:
        """The endpoint tuple that must be unique across connections."""
        return (
            self.source_node_id,
            self.source_output_id,
            self.target_node_id,
            self.target_input_id,
        )

    def touches(self, node_id: str) -> bool:
        return self.source_node_id == node_id or self.target_node_id == node_id

    def copy(self) -> Connection:
        return Connection(
            id=self.id,
            source_node_id=self.source_node_id,
            source_output_id=self.source_output_id,
            target_node_id=self.target_node_id,
            target_input_id=self.target_input_id,
            label_html_content=self.label_html_content,
        )


@dataclass
class Node:
    """
    A single node in the flow graph.

    Nodes have:
    - A unique ID, stable for the node's lifetime
    - A position in world space
    - An open data mapping (conventionally holding ``name``)
    - At most one input and one output port
    - Presentation payloads the engine stores but never interprets
    """
    id: str
    x: float = 0.0
    y: float = 0.0
    data: dict[str, Any] = field(default_factory=dict)
    input: Port | None = None
    output: Port | None = None
    html_content: str | None = None
    show_header: bool = True
    read_only: bool = False
    theme: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str | None:
        return self.data.get("name")

    def port(self, direction: str) -> Port | None:
        return self.input if direction == INPUT else self.output

    def set_position(self, x: float, y: float) -> None:
        self.x = float(x)
        self.y = float(y)


@dataclass(frozen=True)
class NodeSnapshot:
    """
    Read-only copy of a node enriched with its current connections.

    Snapshots are computed on demand and do not follow later mutations.
    """
    id: str
    x: float
    y: float
    data: dict[str, Any]
    input: Port | None
    output: Port | None
    html_content: str | None
    show_header: bool
    read_only: bool
    theme: dict[str, Any]
    incoming: tuple[Connection, ...] = ()
    outgoing: tuple[Connection, ...] = ()

    @classmethod
    def of(
        cls,
        node: Node,
        incoming: list[Connection] | tuple[Connection, ...] = (),
        outgoing: list[Connection] | tuple[Connection, ...] = (),
    ) -> NodeSnapshot:
        return cls(
            id=node.id,
            x=node.x,
            y=node.y,
            data=copy.deepcopy(node.data),
            input=node.input.copy() if node.input else None,
            output=node.output.copy() if node.output else None,
            html_content=node.html_content,
            show_header=node.show_header,
            read_only=node.read_only,
            theme=copy.deepcopy(node.theme),
            incoming=tuple(conn.copy() for conn in incoming),
            outgoing=tuple(conn.copy() for conn in outgoing),
        )

    @property
    def name(self) -> str | None:
        return self.data.get("name")


@dataclass(frozen=True)
class ConnectionLists:
    """Connections attached to a node, split by direction."""
    incoming: list[Connection]
    outgoing: list[Connection]


@dataclass(frozen=True)
class ConnectionChange:
    """Payload for connection created/removed/label-changed events."""
    connection: Connection
    source_node: NodeSnapshot | None
    target_node: NodeSnapshot | None


@dataclass(frozen=True)
class PortLimitReached:
    """Payload for the connection-limit-reached event."""
    node: NodeSnapshot
    port: Port
    direction: str  # "input" or "output"
    count: int


@dataclass
class NodeConfig:
    """
    Construction parameters for GraphStore.add_node.

    ``id`` is only a preference; the store falls back to a generated id
    when it is already taken. ``name`` seeds ``data["name"]`` when the data
    mapping has none.

    Port limits must be positive to cap connections. A limit of 0 or below
    is treated as unbounded, not as "no connections"; use a None port to
    keep a node out of connections on that side.
    """
    x: float = 0.0
    y: float = 0.0
    id: str | None = None
    name: str | None = None
    data: dict[str, Any] | None = None
    input: Port | Mapping[str, Any] | None = None
    output: Port | Mapping[str, Any] | None = None
    html_content: str | None = None
    show_header: bool = True
    read_only: bool = False
    theme: dict[str, Any] | None = None


@dataclass
class NodePatch:
    """
    Partial update for GraphStore.update_node.

    Every field defaults to UNSET and only fields that are set change:
    - name sets ``data["name"]``
    - data and theme shallow-merge into the existing mappings
    - input/output shallow-merge into the existing port, create it when
      missing, or remove it when set to None
    - x, y, html_content and show_header overwrite
    """
    name: str | _Unset = UNSET
    data: Mapping[str, Any] | _Unset = UNSET
    input: Port | Mapping[str, Any] | None | _Unset = UNSET
    output: Port | Mapping[str, Any] | None | _Unset = UNSET
    x: float | _Unset = UNSET
    y: float | _Unset = UNSET
    html_content: str | None | _Unset = UNSET
    show_header: bool | _Unset = UNSET
    theme: Mapping[str, Any] | _Unset = UNSET

    def is_empty(self) -> bool:
        return all(value is UNSET for value in vars(self).values())


class RejectionReason(Enum):
    """Why a mutating GraphStore operation was refused."""
    READ_ONLY = "read_only"
    NODE_READ_ONLY = "node_read_only"
    NODE_NOT_FOUND = "node_not_found"
    CONNECTION_NOT_FOUND = "connection_not_found"
    PORT_MISMATCH = "port_mismatch"
    OUTPUT_LIMIT_REACHED = "output_limit_reached"
    INPUT_LIMIT_REACHED = "input_limit_reached"
    DUPLICATE_CONNECTION = "duplicate_connection"
    SELF_LOOP = "self_loop"


@dataclass(frozen=True)
class Rejection:
    """Diagnostic record of the most recent refused mutation."""
    reason: RejectionReason
    message: str
