"""
ViewSession: everything derived from one loaded view.

A session bundles the field descriptors, the ReferenceStore seeded with the
view's values, the DependencyGraph and an empty ComponentRegistry. Sessions
are never mutated into each other: every load or refresh response creates a
new session with a higher generation, and the old one is dropped wholesale.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from caseform.graph import DependencyGraph
from caseform.reference_store import ReferenceStore
from caseform.registry import ComponentRegistry, Registration, SetValueFn
from caseform.view_model import FieldDescriptor, describe_fields

logger = logging.getLogger(__name__)


@dataclass
class ViewSession:
    generation: int
    view: Mapping
    fields: List[FieldDescriptor]
    store: ReferenceStore
    graph: DependencyGraph
    registry: ComponentRegistry = field(default_factory=ComponentRegistry)

    @classmethod
    def from_view(cls, view: Optional[Mapping], generation: int) -> "ViewSession":
        """Build the graph nodes and seed the store from a view tree."""
        view = view if isinstance(view, Mapping) else {}
        fields = describe_fields(view)
        store = ReferenceStore()
        for descriptor in fields:
            if descriptor.reference:
                store.set(descriptor.reference, descriptor.value)
        graph = DependencyGraph.from_fields(fields)
        logger.info(f"Built view session generation={generation}: {len(fields)} field(s), "
                    f"{len(graph.reference_map)} reference(s)")
        return cls(generation=generation, view=view, fields=fields, store=store, graph=graph)

    def field_at(self, index: int) -> Optional[FieldDescriptor]:
        position = index - 1
        if 0 <= position < len(self.fields):
            return self.fields[position]
        return None

    def owns(self, descriptor: FieldDescriptor) -> bool:
        """True when descriptor belongs to this session's view."""
        return self.field_at(descriptor.index) is descriptor

    def register(
        self,
        descriptor: FieldDescriptor,
        set_value: SetValueFn,
        widget: Optional[Any] = None,
    ) -> Optional[Registration]:
        """Register a rendered widget and connect its graph edges.

        Registrations for fields of another view are stale and dropped.
        """
        if not self.owns(descriptor):
            logger.warning(f"Dropping stale registration: index={descriptor.index}, "
                           f"reference={descriptor.reference!r}, generation={self.generation}")
            return None
        self.graph.connect(descriptor)
        return self.registry.register(descriptor, set_value, widget)

    def content(self) -> Dict[str, Any]:
        """Nested content snapshot posted to the server."""
        return self.store.to_content()
