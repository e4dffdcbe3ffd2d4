"""
Event Channel - Synchronous publish/subscribe for graph notifications.

The GraphStore publishes every change through an EventChannel; renderers,
persistence layers and other observers subscribe to the events they need.
Delivery is inline and in registration order. A failing handler is logged
and skipped so the remaining handlers still run.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable


logger = logging.getLogger(__name__)


Handler = Callable[..., Any]


class GraphEvent(Enum):
    """Events published by the GraphStore."""
    NODE_CREATED = "nodeCreated"
    NODE_REMOVED = "nodeRemoved"
    NODE_UPDATED = "nodeUpdated"
    CONNECTION_CREATED = "connectionCreated"
    CONNECTION_REMOVED = "connectionRemoved"
    CONNECTION_LABEL_CHANGED = "connectionLabelChanged"
    CONNECTION_LIMIT_REACHED = "connectionLimitReached"
    GRAPH_RELOADED = "graphReloaded"
    READ_ONLY_CHANGED = "readOnlyChanged"
    NODE_COPIED = "nodeCopied"
    NODE_PASTED = "nodePasted"


def event_name(event: GraphEvent | str) -> str:
    """Get the channel key for an event member or raw name."""
    if isinstance(event, GraphEvent):
        return event.value
    return event


class EventChannel:
    """
    Named event subscriptions with synchronous delivery.

    Multiple handlers may be registered per event name; they are invoked
    in registration order on the publishing call.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, event: GraphEvent | str, handler: Handler) -> None:
        """Register a handler for an event."""
        self._handlers.setdefault(event_name(event), []).append(handler)

    def unsubscribe(self, event: GraphEvent | str, handler: Handler) -> None:
        """Remove one registration of ``handler``. No-op if not registered."""
        handlers = self._handlers.get(event_name(event))
        if not handlers:
            return
        for i, registered in enumerate(handlers):
            if registered is handler or registered == handler:
                del handlers[i]
                break

    def publish(self, event: GraphEvent | str, *payload: Any) -> None:
        """
        Invoke every handler registered for ``event``.

        Handler exceptions are logged and never propagate to the caller.
        """
        name = event_name(event)
        # Copy so handlers may (un)subscribe during dispatch
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(*payload)
            except Exception:
                logger.exception("Error in event handler for %s", name)

    def handler_count(self, event: GraphEvent | str) -> int:
        return len(self._handlers.get(event_name(event), ()))

    def clear(self) -> None:
        """Drop every registered handler."""
        self._handlers.clear()
