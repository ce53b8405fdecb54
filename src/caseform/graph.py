"""
Dependency graph over the fields of one view.

Nodes are field indices. An edge a → b means "a change of a must reach b":
- b's data page lookup takes a's value as a parameter, or
- a and b expose the same reference (mirrored inputs).

The graph is rebuilt from scratch for every loaded view. Nodes exist for every
field of the view; edges are added as widgets register, and only for fields
whose control has at least one mode. Malformed metadata never raises, it just
yields no edge: the server schema evolves independently of this client.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from caseform.view_model import FieldDescriptor, expand_relative_path

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Directed graph keyed by field index with a reference → indices map.

    Adjacency preserves insertion order so traversal order is deterministic.
    """

    def __init__(self):
        self._adjacency: Dict[int, Dict[int, None]] = {}
        self._reference_map: Dict[str, Dict[int, None]] = {}
        self._modal: Set[int] = set()

    @classmethod
    def from_fields(cls, fields: Iterable[FieldDescriptor]) -> "DependencyGraph":
        """Create one node per field and index fields by reference."""
        graph = cls()
        for field in fields:
            graph.add_node(field.index, field.reference, field.has_modes)
        return graph

    def add_node(self, index: int, reference: Optional[str] = None, has_modes: bool = True) -> None:
        self._adjacency.setdefault(index, {})
        if has_modes:
            self._modal.add(index)
        else:
            self._modal.discard(index)
        key = expand_relative_path(reference)
        if key:
            self._reference_map.setdefault(key, {})[index] = None

    def has_node(self, index: int) -> bool:
        return index in self._adjacency

    def has_modes(self, index: int) -> bool:
        return index in self._modal

    def add_edge(self, source: int, target: int) -> bool:
        """Add source → target. Idempotent; self loops and unknown nodes are ignored.

        Returns:
            True if a new edge was inserted.
        """
        if source == target or source not in self._adjacency or target not in self._adjacency:
            return False
        edges = self._adjacency[source]
        if target in edges:
            return False
        edges[target] = None
        return True

    def neighbors(self, index: int) -> Tuple[int, ...]:
        return tuple(self._adjacency.get(index, ()))

    def indices_for(self, reference: Optional[str]) -> Tuple[int, ...]:
        key = expand_relative_path(reference)
        if not key:
            return ()
        return tuple(self._reference_map.get(key, ()))

    @property
    def reference_map(self) -> Dict[str, Tuple[int, ...]]:
        return {reference: tuple(indices) for reference, indices in self._reference_map.items()}

    def edges(self) -> List[Tuple[int, int]]:
        return [(source, target) for source, targets in self._adjacency.items() for target in targets]

    def __len__(self) -> int:
        return len(self._adjacency)

    def connect(self, field: FieldDescriptor) -> int:
        """Add the edges a registering field participates in.

        Mirror edges link this field with every other field of the same
        reference, and back from those that have modes themselves. Parameter
        edges run into this field from every field with modes exposing a
        parameter's source reference. A field without modes never gets an
        outgoing edge.

        Returns:
            Number of edges inserted.
        """
        if not self.has_node(field.index) or not field.has_modes:
            return 0

        added = 0
        for other in self.indices_for(field.reference):
            if other == field.index:
                continue
            added += self.add_edge(field.index, other)
            if other in self._modal:
                added += self.add_edge(other, field.index)

        mode = field.control.first_mode
        for source_reference in mode.param_sources():
            for provider in self.indices_for(source_reference):
                if provider not in self._modal:
                    continue
                added += self.add_edge(provider, field.index)

        if added:
            logger.debug(f"Connected field index={field.index} reference={field.reference!r}: {added} edge(s)")
        return added
