"""Tests for the assignment lifecycle, events and error toasts."""
import pytest

from caseapi.errors import CaseServiceError, CaseTransportError
from caseform.errors import (
    GENERIC_ERROR_MESSAGE,
    InvalidTransitionError,
    ValidationMessage,
    is_no_assignments_error,
    toast_for_error,
    validation_messages,
)
from caseform.events import CaseEvent, EventBus, EventRecorder
from caseform.lifecycle import TRANSITIONS, AssignmentState, Lifecycle


class TestLifecycle:
    """Tests for the state machine."""

    def test_starts_empty(self):
        lifecycle = Lifecycle()
        assert lifecycle.state is AssignmentState.EMPTY
        assert not lifecycle.busy

    def test_round_trip(self):
        """Load, edit, submit: every round trip passes through REFRESHING."""
        lifecycle = Lifecycle()
        lifecycle.transition(AssignmentState.REFRESHING)
        assert lifecycle.busy
        lifecycle.transition(AssignmentState.LOADED)
        lifecycle.edit()
        lifecycle.edit()
        assert lifecycle.state is AssignmentState.EDITING
        lifecycle.transition(AssignmentState.REFRESHING)
        lifecycle.transition(AssignmentState.CONFIRMING)
        lifecycle.transition(AssignmentState.CLOSED)
        assert lifecycle.state is AssignmentState.CLOSED

    def test_illegal_transition_raises(self):
        lifecycle = Lifecycle()
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.transition(AssignmentState.EDITING)
        assert exc_info.value.source is AssignmentState.EMPTY
        assert exc_info.value.target is AssignmentState.EDITING

    def test_closed_is_terminal(self):
        """No transition leaves CLOSED."""
        assert TRANSITIONS[AssignmentState.CLOSED] == frozenset()
        lifecycle = Lifecycle(AssignmentState.CLOSED)
        for state in AssignmentState:
            assert not lifecycle.can_transition(state)

    def test_resume_returns_to_entry_state(self):
        """A failed round trip goes back to where REFRESHING was entered from."""
        lifecycle = Lifecycle(AssignmentState.EDITING)
        lifecycle.transition(AssignmentState.REFRESHING)
        assert lifecycle.resume_state is AssignmentState.EDITING
        assert lifecycle.resume() is AssignmentState.EDITING
        assert not lifecycle.busy

    def test_edit_ignored_while_refreshing(self):
        lifecycle = Lifecycle(AssignmentState.LOADED)
        lifecycle.transition(AssignmentState.REFRESHING)
        lifecycle.edit()
        assert lifecycle.state is AssignmentState.REFRESHING

    def test_transition_callbacks(self):
        """Callbacks see every move; a failing one is contained."""
        lifecycle = Lifecycle()
        seen = []

        def failing(source, target):
            raise RuntimeError("boom")

        lifecycle.add_transition_callback(failing)
        lifecycle.add_transition_callback(lambda s, t: seen.append((s, t)))
        lifecycle.transition(AssignmentState.REFRESHING)
        assert seen == [(AssignmentState.EMPTY, AssignmentState.REFRESHING)]


class TestEventBus:
    """Tests for outbound events."""

    def test_emit_and_off(self):
        bus = EventBus()
        received = []
        callback = received.append
        bus.on(CaseEvent.TOAST, callback)
        bus.emit(CaseEvent.TOAST, {"title": "t"})
        bus.off(CaseEvent.TOAST, callback)
        bus.emit(CaseEvent.TOAST, {"title": "u"})
        assert received == [{"title": "t"}]

    def test_string_event_names(self):
        """Events can be addressed by their wire name."""
        bus = EventBus()
        recorder = EventRecorder(bus)
        bus.emit("refreshassignments")
        assert recorder.of(CaseEvent.REFRESH_ASSIGNMENTS) == [{}]

    def test_failing_callback_does_not_block_others(self):
        bus = EventBus()
        received = []

        def failing(payload):
            raise RuntimeError("boom")

        bus.on(CaseEvent.FIELD_CHANGED, failing)
        bus.on(CaseEvent.FIELD_CHANGED, received.append)
        bus.emit(CaseEvent.FIELD_CHANGED, {"reference": "Name", "value": "Ada"})
        assert received == [{"reference": "Name", "value": "Ada"}]


class TestErrorToasts:
    """Tests for mapping failures to toasts."""

    def test_service_error_with_errors(self):
        error = CaseServiceError(500, {"errors": [{"ID": "Pega_API_001", "message": "Bad things"}]})
        toast = toast_for_error(error)
        assert toast.title == "Error, ID: Pega_API_001"
        assert toast.message == "Bad things"
        assert toast.variant == "error"

    def test_generic_message(self):
        """Failures without reported errors get the generic message."""
        assert toast_for_error(CaseTransportError("timeout")).message == GENERIC_ERROR_MESSAGE
        assert toast_for_error(CaseServiceError(502, "Bad gateway")).message == GENERIC_ERROR_MESSAGE

    def test_string_message(self):
        toast = toast_for_error("Could not create a new case")
        assert (toast.title, toast.message) == ("Error", "Could not create a new case")

    def test_no_assignments(self):
        error = CaseServiceError(404, {"errors": [{"ID": "Pega_API_023", "message": "No assignments"}]})
        assert is_no_assignments_error(error)
        assert not is_no_assignments_error(CaseServiceError(404, None))

    def test_validation_messages(self):
        """ValidationMessages are grouped per error; Path maps to a reference."""
        error = CaseServiceError(422, {"errors": [
            {"ID": "E1", "ValidationMessages": [{"Path": ".Name", "ValidationMessage": "Required"}]},
            {"ID": "E2", "message": "no validation"},
        ]})
        assert error.is_validation_error
        assert validation_messages(error) == [[ValidationMessage(message="Required", path=".Name")]]
        assert validation_messages(error)[0][0].reference == "Name"
