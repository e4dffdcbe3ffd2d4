"""
Flowly - An embeddable flow-graph engine.

Nodes with typed ports are placed on a canvas and connected; the
GraphStore keeps the graph consistent and tells observers what changed.
"""

from flowly.core import (
    EventChannel,
    GraphEvent,
    GraphStore,
    NodeConfig,
    NodePatch,
)

__version__ = "0.1.0"

__all__ = [
    "EventChannel",
    "GraphEvent",
    "GraphStore",
    "NodeConfig",
    "NodePatch",
    "__version__",
]
