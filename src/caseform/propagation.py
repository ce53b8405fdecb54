"""
Cascading value propagation along the dependency graph.

Algorithm (one top-level call):
    visited = {changed.index}
    worklist = [(changed, value)]
    for each (source, value) popped from the worklist:
        for each unvisited neighbor of source:
            same reference     → mirrored write (widget + store), leaf action
            dependent lookup   → await set_value(OptionRefresh)
                                 first option selected and enqueued as a new source,
                                 or value cleared when no option came back

Termination on cyclic graphs is guaranteed by the visited set; every reachable
node is visited at most once per call. Each await is followed by a staleness
check: a view replaced mid-pass voids the remaining work.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, List, Mapping, Optional, Set, Tuple

from caseform.options import Option, OptionRefresh
from caseform.registry import Registration
from caseform.session import ViewSession
from caseform.view_model import FieldDescriptor, expand_relative_path

logger = logging.getLogger(__name__)


def _option_value(option: Any) -> Any:
    if isinstance(option, Option):
        return option.value
    if isinstance(option, Mapping):
        return option.get('value')
    return option


@dataclass
class PropagationResult:
    """What one propagation pass did, in visiting order."""
    visited: List[int] = field(default_factory=list)
    mirrored: List[int] = field(default_factory=list)
    refreshed: List[int] = field(default_factory=list)
    cleared: List[int] = field(default_factory=list)
    stale: bool = False


class PropagationEngine:
    """Walks one session's graph after a field change.

    Args:
        session: The ViewSession whose graph, registry and store are updated
        is_current: Returns False once the session has been replaced
    """

    def __init__(self, session: ViewSession, is_current: Optional[Callable[[], bool]] = None):
        self.session = session
        self._is_current = is_current or (lambda: True)

    def _still_current(self, result: PropagationResult) -> bool:
        if self._is_current():
            return True
        result.stale = True
        logger.debug(f"View generation {self.session.generation} replaced, dropping propagation results")
        return False

    async def propagate(self, changed: FieldDescriptor, value: Any) -> PropagationResult:
        result = PropagationResult()
        graph = self.session.graph
        if not graph.has_node(changed.index):
            return result

        visited: Set[int] = {changed.index}
        result.visited.append(changed.index)
        worklist: Deque[Tuple[FieldDescriptor, Any]] = deque([(changed, value)])

        while worklist:
            source, source_value = worklist.popleft()
            for index in graph.neighbors(source.index):
                if index in visited:
                    continue
                registration = self.session.registry.get(index)
                if registration is None:
                    continue

                dependent = registration.field
                if dependent.reference == source.reference:
                    visited.add(index)
                    result.visited.append(index)
                    await self._mirror(registration, source_value)
                    result.mirrored.append(index)
                    if not self._still_current(result):
                        return result
                    continue

                mode = dependent.control.first_mode
                if mode is None or not mode.has_dependent_lookup:
                    continue

                visited.add(index)
                result.visited.append(index)
                request = OptionRefresh(
                    param_key=self._param_key(source, dependent),
                    param_value=source_value,
                    params=mode.data_page_params,
                )
                options = await self._refresh_options(registration, request)
                if not self._still_current(result):
                    return result

                if options:
                    selected = _option_value(options[0])
                    await registration.set_value(selected)
                    if not self._still_current(result):
                        return result
                    self.session.store.set(dependent.reference, selected)
                    result.refreshed.append(index)
                    worklist.append((dependent, selected))
                else:
                    self.session.store.set(dependent.reference, "")
                    result.cleared.append(index)

        logger.debug(f"Propagated change of index={changed.index} reference={changed.reference!r}: "
                     f"visited={result.visited}")
        return result

    async def _mirror(self, registration: Registration, value: Any) -> None:
        await registration.set_value(value)
        self.session.store.set(registration.reference, value)

    @staticmethod
    def _param_key(source: FieldDescriptor, dependent: FieldDescriptor) -> Optional[str]:
        """Name of the dependent's parameter fed by source's reference."""
        source_reference = expand_relative_path(source.reference)
        for param in dependent.control.first_mode.data_page_params:
            if param.source_reference == source_reference:
                return param.name
        return None

    async def _refresh_options(self, registration: Registration, request: OptionRefresh) -> List[Any]:
        """Run the widget's option hook; failures stay local to this node."""
        try:
            options = await registration.set_value(request)
        except Exception as e:
            logger.warning(f"Option refresh failed for index={registration.index} "
                           f"reference={registration.reference!r}: {e}")
            return []
        return list(options) if isinstance(options, (list, tuple)) else []
