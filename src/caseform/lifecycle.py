"""
Assignment/view lifecycle.

    EMPTY ──load──▶ REFRESHING ──▶ LOADED ──edit──▶ EDITING
                        ▲  │                          │
                        │  └──▶ CONFIRMING ──▶ CLOSED  │
                        └──────── submit/refresh ──────┘

Every server round trip goes through REFRESHING. A failed round trip
returns to the state REFRESHING was entered from.
"""

import logging
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from caseform.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class AssignmentState(Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    EDITING = "editing"
    REFRESHING = "refreshing"
    CONFIRMING = "confirming"
    CLOSED = "closed"


TRANSITIONS: Dict[AssignmentState, FrozenSet[AssignmentState]] = {
    AssignmentState.EMPTY: frozenset({AssignmentState.REFRESHING, AssignmentState.CLOSED}),
    AssignmentState.LOADED: frozenset({AssignmentState.EDITING, AssignmentState.REFRESHING,
                                       AssignmentState.CLOSED}),
    AssignmentState.EDITING: frozenset({AssignmentState.EDITING, AssignmentState.REFRESHING,
                                        AssignmentState.CLOSED}),
    AssignmentState.REFRESHING: frozenset({AssignmentState.LOADED, AssignmentState.EDITING,
                                           AssignmentState.CONFIRMING, AssignmentState.CLOSED,
                                           AssignmentState.EMPTY}),
    AssignmentState.CONFIRMING: frozenset({AssignmentState.CLOSED}),
    AssignmentState.CLOSED: frozenset(),
}

TransitionCallback = Callable[[AssignmentState, AssignmentState], None]


class Lifecycle:
    """Tracks the state of one case container."""

    def __init__(self, state: AssignmentState = AssignmentState.EMPTY):
        self._state = state
        self._resume_state: Optional[AssignmentState] = None
        self._on_transition_callbacks: List[TransitionCallback] = []

    @property
    def state(self) -> AssignmentState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is AssignmentState.REFRESHING

    def add_transition_callback(self, callback: TransitionCallback) -> None:
        if callback not in self._on_transition_callbacks:
            self._on_transition_callbacks.append(callback)

    def can_transition(self, target: AssignmentState) -> bool:
        return target in TRANSITIONS[self._state]

    def transition(self, target: AssignmentState) -> None:
        """Move to target.

        Raises:
            InvalidTransitionError: target is not reachable from the current state
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(self._state, target)
        source = self._state
        if target is AssignmentState.REFRESHING:
            self._resume_state = source
        self._state = target
        if source is not target:
            logger.info(f"Lifecycle {source.value} -> {target.value}")
        for callback in self._on_transition_callbacks:
            try:
                callback(source, target)
            except Exception as e:
                logger.warning(f"Error in lifecycle transition callback: {e}")

    @property
    def resume_state(self) -> Optional[AssignmentState]:
        return self._resume_state

    def resume(self) -> AssignmentState:
        """Leave REFRESHING for the state it was entered from.

        Used when a round trip failed, or succeeded without replacing the view.
        """
        if self._state is AssignmentState.REFRESHING and self._resume_state is not None:
            resume, self._resume_state = self._resume_state, None
            self.transition(resume if self.can_transition(resume) else AssignmentState.EMPTY)
        return self._state

    def edit(self) -> None:
        """Mark the view edited; no-op while a round trip is in flight."""
        if self._state in (AssignmentState.LOADED, AssignmentState.EDITING):
            self.transition(AssignmentState.EDITING)
