"""
ComponentRegistry: index-keyed registry of rendered field widgets.

Every widget registers itself after it renders. The registry is the idMap of
the dependency graph (index → registration) and also answers "which widgets
show this reference" for mirrored writes and validation routing.

Identity is the field index, never the reference: two widgets may share a
reference (repeated rows, mirrored inputs) and must not alias each other.
Re-registering an index replaces the previous registration explicitly.

Lifecycle: created with each ViewSession, discarded with it.
Thread safety: Not thread-safe (all operations expected on the event loop).
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

from caseform.view_model import FieldDescriptor, expand_relative_path

logger = logging.getLogger(__name__)

SetValueFn = Callable[[Any], Awaitable[Any]]


@dataclass
class Registration:
    """Node payload: one rendered widget bound to one field."""
    field: FieldDescriptor
    set_value: SetValueFn
    widget: Optional[Any] = None

    @property
    def index(self) -> int:
        return self.field.index

    @property
    def reference(self) -> Optional[str]:
        return self.field.reference


class ComponentRegistry:
    """Registry of Registration records for one view instance.

    Two views over the same records:
    - by index: the authoritative node payload (idMap)
    - by reference: registrations in registration order
    """

    def __init__(self):
        self._by_index: Dict[int, Registration] = {}
        self._by_reference: Dict[str, List[int]] = {}
        # Callbacks receive the new Registration
        self._on_register_callbacks: List[Callable[[Registration], None]] = []

    def add_register_callback(self, callback: Callable[[Registration], None]) -> None:
        """Subscribe to registration events."""
        if callback not in self._on_register_callbacks:
            self._on_register_callbacks.append(callback)

    def remove_register_callback(self, callback: Callable[[Registration], None]) -> None:
        """Unsubscribe from registration events."""
        if callback in self._on_register_callbacks:
            self._on_register_callbacks.remove(callback)

    def _fire_register_callbacks(self, registration: Registration) -> None:
        for callback in self._on_register_callbacks:
            try:
                callback(registration)
            except Exception as e:
                logger.warning(f"Error in register callback: {e}")

    def register(
        self,
        field: FieldDescriptor,
        set_value: SetValueFn,
        widget: Optional[Any] = None,
    ) -> Registration:
        """Register a widget for field, replacing any registration of the same index."""
        registration = Registration(field=field, set_value=set_value, widget=widget)
        if field.index in self._by_index:
            self.replace(registration)
        else:
            self._by_index[field.index] = registration
            if field.reference:
                self._by_reference.setdefault(field.reference, []).append(field.index)
            logger.debug(f"Registered widget: index={field.index}, reference={field.reference!r}")
        self._fire_register_callbacks(registration)
        return registration

    def replace(self, registration: Registration) -> None:
        """Replace the registration for registration.index.

        The replaced entry moves to the end of its reference's ordering, the
        way a re-rendered widget is the most recent one on screen.
        """
        index = registration.index
        previous = self._by_index.get(index)
        if previous is not None and previous.reference:
            indices = self._by_reference.get(previous.reference, [])
            if index in indices:
                indices.remove(index)
            if not indices:
                self._by_reference.pop(previous.reference, None)
        self._by_index[index] = registration
        if registration.reference:
            self._by_reference.setdefault(registration.reference, []).append(index)
        logger.debug(f"Replaced widget registration: index={index}, reference={registration.reference!r}")

    def get(self, index: int) -> Optional[Registration]:
        return self._by_index.get(index)

    def for_reference(self, reference: Optional[str]) -> List[Registration]:
        """Registrations showing reference, in registration order."""
        key = expand_relative_path(reference)
        if not key:
            return []
        return [self._by_index[i] for i in self._by_reference.get(key, []) if i in self._by_index]

    def first_field(self, reference: str) -> Optional[FieldDescriptor]:
        entries = self.for_reference(reference)
        return entries[0].field if entries else None

    def references(self) -> List[str]:
        return list(self._by_reference)

    def __contains__(self, index: int) -> bool:
        return index in self._by_index

    def __len__(self) -> int:
        return len(self._by_index)

    def __iter__(self) -> Iterator[Registration]:
        return iter(list(self._by_index.values()))

    def clear(self) -> None:
        self._by_index.clear()
        self._by_reference.clear()
        logger.debug("Cleared all widget registrations")
