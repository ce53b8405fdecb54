"""
Outbound events of the case container.

Hosts subscribe with EventBus.on(event, callback). Callbacks receive the
event payload dict. A failing callback is logged and never interrupts the
container or the other subscribers.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EventCallback = Callable[[Dict[str, Any]], None]


class CaseEvent(str, Enum):
    FIELD_CHANGED = "fieldchanged"
    LIST_ACTION = "listactionevent"
    WORK_ITEM_SELECTED = "workitemselected"
    WORK_OBJECT_CLOSED = "workobjectclosed"
    CHANGE_TITLE = "changetitle"
    TOAST = "toast"
    REFRESH_ASSIGNMENTS = "refreshassignments"
    WORK_OBJECT_CREATED = "workobjectcreated"


class EventBus:
    """Synchronous publish/subscribe keyed by CaseEvent."""

    def __init__(self):
        self._callbacks: Dict[CaseEvent, List[EventCallback]] = {}

    def on(self, event: CaseEvent, callback: EventCallback) -> None:
        callbacks = self._callbacks.setdefault(CaseEvent(event), [])
        if callback not in callbacks:
            callbacks.append(callback)

    def off(self, event: CaseEvent, callback: EventCallback) -> None:
        callbacks = self._callbacks.get(CaseEvent(event), [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: CaseEvent, payload: Optional[Dict[str, Any]] = None) -> None:
        event = CaseEvent(event)
        payload = payload or {}
        logger.debug(f"Emitting {event.value}: {payload}")
        for callback in list(self._callbacks.get(event, [])):
            try:
                callback(payload)
            except Exception as e:
                logger.warning(f"Error in {event.value} callback: {e}")


class EventRecorder:
    """Subscribes to every event and keeps (event, payload) pairs in order."""

    def __init__(self, bus: EventBus):
        self.events: List[tuple] = []
        for event in CaseEvent:
            bus.on(event, self._recorder(event))

    def _recorder(self, event: CaseEvent) -> EventCallback:
        def record(payload: Dict[str, Any]) -> None:
            self.events.append((event, payload))
        return record

    def of(self, event: CaseEvent) -> List[Dict[str, Any]]:
        return [payload for recorded, payload in self.events if recorded == CaseEvent(event)]
