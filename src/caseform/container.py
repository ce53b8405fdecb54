"""
CaseContainer: orchestration of one assignment of one case.

The container owns the current ViewSession and replaces it wholesale with
every view the server returns. Widgets register into the session as they
render; field changes run through the ActionPipeline, which ends in a
propagation pass over the session's DependencyGraph.

Round trips (load, refresh, submit, save, create) move the Lifecycle through
REFRESHING, one at a time: a round trip started while another is in flight
waits for it, and is skipped if the container can no longer refresh. Failures are surfaced as toasts or routed validation messages
and leave the container in the state it was in before the round trip.

Example:
    container = CaseContainer(service, assignment_id="ASSIGN-WORKLIST C-12!FLOW", case_id="ORG-APP C-12")
    await container.load_assignment()
    field = container.session.registry.first_field("Customer.Country")
    await container.handle_field_changed(field, "FR")
    await container.submit()
"""

import asyncio
import inspect
import logging
import webbrowser
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from caseapi.errors import CaseApiError, CaseServiceError
from caseform.actions import ActionPipeline, Step
from caseform.errors import (
    InvalidServerResponseError,
    Toast,
    ValidationMessage,
    toast_for_error,
    validation_messages,
)
from caseform.events import CaseEvent, EventBus
from caseform.lifecycle import AssignmentState, Lifecycle
from caseform.option_cache import OptionCache
from caseform.options import OptionResolver
from caseform.propagation import PropagationEngine, PropagationResult
from caseform.reference_store import RepeatType, blank_row, get_repeat
from caseform.registry import Registration, SetValueFn
from caseform.session import ViewSession
from caseform.view_model import FieldDescriptor, expand_relative_path
from caseform.widgets import render_view

logger = logging.getLogger(__name__)

REFRESH_ACTION = "Refresh"
CONFIRM_ACTION = "Confirm"

UrlOpener = Callable[[str, Optional[str], Optional[str]], Any]
Renderer = Callable[["CaseContainer"], Awaitable[Any]]


def open_in_browser(url: str, window_name: Optional[str] = None, window_options: Optional[str] = None) -> None:
    webbrowser.open_new_tab(url)


def short_case_id(case_id: Optional[str]) -> Optional[str]:
    """'ORG-APP-WORK C-12' -> 'C-12'."""
    if not case_id:
        return case_id
    parts = case_id.split(" ")
    return parts[1] if len(parts) > 1 else case_id


class CaseContainer:
    """Hosts the view of one assignment and everything derived from it.

    Args:
        service: Case engine collaborator (CaseService or a compatible fake)
        assignment_id: Assignment to open
        case_id: Case the assignment belongs to
        case_type: Case type to create (new-work harness)
        process_id: Starting process of the case type (new-work harness)
        events: Bus receiving outbound events; a private one by default
        url_opener: Called with (url, window_name, window_options)
        script_handlers: runScript function name → callable(params)
        prompter: Asks the user for a page group name; None cancels
        renderer: Renders and binds widgets after each view install
    """

    def __init__(
        self,
        service: Any,
        assignment_id: Optional[str] = None,
        case_id: Optional[str] = None,
        case_type: Optional[str] = None,
        process_id: Optional[str] = None,
        events: Optional[EventBus] = None,
        url_opener: Optional[UrlOpener] = None,
        script_handlers: Optional[Dict[str, Callable[[Dict[str, Any]], Any]]] = None,
        prompter: Optional[Callable[[str], Optional[str]]] = None,
        renderer: Optional[Renderer] = render_view,
    ):
        self.service = service
        self.assignment_id = assignment_id
        self.case_id = case_id
        self.case_type = case_type
        self.process_id = process_id
        self.events = events or EventBus()
        self.lifecycle = Lifecycle()
        self._url_opener = url_opener or open_in_browser
        self._script_handlers = dict(script_handlers or {})
        self._prompter = prompter
        self._renderer = renderer

        self.assignment: Optional[Dict[str, Any]] = None
        self.work_object: Optional[Dict[str, Any]] = None
        self.view: Optional[Dict[str, Any]] = None
        self.current_action: Optional[str] = None
        self.flow_action: Optional[str] = None
        self.stages: List[Dict[str, Any]] = []
        self.actions: List[Dict[str, Any]] = [{'label': REFRESH_ACTION, 'value': REFRESH_ACTION}]
        self.validation_errors: List[ValidationMessage] = []
        self.widgets: List[Any] = []

        self._session: Optional[ViewSession] = None
        self._generation = 0
        self._option_resolver: Optional[OptionResolver] = None
        self._round_trip: Optional[asyncio.Lock] = None
        self.option_cache: OptionCache = OptionCache(lambda: self._generation)
        self.pipeline = ActionPipeline(self)

    # ========== SESSION ==========

    @property
    def session(self) -> Optional[ViewSession]:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> AssignmentState:
        return self.lifecycle.state

    @property
    def busy(self) -> bool:
        return self.lifecycle.busy

    @property
    def has_errors(self) -> bool:
        return bool(self.validation_errors)

    @property
    def option_resolver(self) -> Optional[OptionResolver]:
        return self._option_resolver

    def is_current(self, session: Optional[ViewSession]) -> bool:
        return session is not None and session is self._session

    async def install_view(self, view: Optional[Mapping]) -> ViewSession:
        """Replace the current session with one built from a view tree, then render it."""
        self._generation += 1
        session = ViewSession.from_view(view, self._generation)
        self._session = session
        self._option_resolver = OptionResolver(
            session.store,
            fetch=getattr(self.service, 'fetch_options', None),
            work_object=lambda: self.work_object,
            cache=self.option_cache,
        )
        self.widgets = []
        if self._renderer is not None:
            rendered = await self._renderer(self)
            if self.is_current(session):
                self.widgets = list(rendered or [])
        return session

    def register_component(
        self,
        reference: Optional[str],
        field: Optional[FieldDescriptor],
        widget: Optional[Any],
        set_value: SetValueFn,
    ) -> Optional[Registration]:
        """Entry point for widgets announcing themselves after rendering."""
        if not reference or field is None:
            return None
        if self._session is None:
            logger.warning(f"Dropping registration of {reference!r}: no view installed")
            return None
        return self._session.register(field, set_value, widget)

    async def propagate(self, field: FieldDescriptor, value: Any) -> PropagationResult:
        session = self._session
        if session is None:
            return PropagationResult(stale=True)
        engine = PropagationEngine(session, lambda: self.is_current(session))
        return await engine.propagate(field, value)

    # ========== EVENTS ==========

    def toast(self, toast: Toast) -> None:
        self.events.emit(CaseEvent.TOAST, toast.to_dict())

    def fire_change_title(self) -> None:
        assignment = self.assignment or {}
        action = self.current_action
        actions = assignment.get('actions') or []
        if actions:
            action = actions[0].get('name')
        self.events.emit(CaseEvent.CHANGE_TITLE, {
            'caseName': assignment.get('name'),
            'caseId': short_case_id(self.case_id),
            'assignmentId': self.assignment_id,
            'caseKey': self.case_id,
            'action': action,
        })

    def surface_error(self, error: Exception) -> None:
        """Show a failed round trip to the user.

        Validation messages with a Path are recorded and routed to the widgets
        at that reference. A lone path-less message becomes a toast. Every
        other failure becomes one error toast.
        """
        logger.warning(f"Case engine call failed: {error}")
        if not (isinstance(error, CaseServiceError) and error.is_validation_error):
            self.toast(toast_for_error(error))
            return

        shown = False
        for messages in validation_messages(error):
            for message in messages:
                if message.path:
                    self.validation_errors.append(message)
                    self.report_validity(message.path, message.message)
                    shown = True
                elif not shown and len(messages) == 1:
                    self.toast(toast_for_error(message.message))
                    shown = True

    def report_validity(self, path: Optional[str], message: str) -> int:
        """Route a validation message to every widget bound at path.

        Returns:
            Number of widgets that received the message.
        """
        reference = expand_relative_path(path)
        if not reference or self._session is None:
            return 0
        reported = 0
        for registration in self._session.registry.for_reference(reference):
            if registration.widget is not None:
                registration.widget.set_custom_validity(message)
                registration.widget.report_validity()
                reported += 1
        return reported

    # ========== ASSIGNMENT FLOW ==========

    def _round_trip_lock(self) -> asyncio.Lock:
        if self._round_trip is None:
            self._round_trip = asyncio.Lock()
        return self._round_trip

    def _begin_round_trip(self, what: str) -> bool:
        """Enter REFRESHING. Called with the round-trip lock held."""
        if not self.lifecycle.can_transition(AssignmentState.REFRESHING):
            logger.warning(f"Skipping {what}: container is {self.state.value}")
            return False
        self.lifecycle.transition(AssignmentState.REFRESHING)
        return True

    def _set_stages(self) -> None:
        stages = (self.work_object or {}).get('stages') or []
        self.stages = [{'label': s.get('name'), 'value': s.get('ID')} for s in stages if isinstance(s, Mapping)]

    def _set_actions(self) -> None:
        """Case action menu: Refresh, the other flow actions, then the current flow action last."""
        actions = [a for a in (self.assignment or {}).get('actions') or [] if isinstance(a, Mapping)]
        menu = [{'label': REFRESH_ACTION, 'value': REFRESH_ACTION}]
        menu.extend({'label': a.get('name'), 'value': a.get('ID')} for a in actions[1:])
        if actions:
            menu.append({'label': actions[0].get('name'), 'value': self.flow_action})
        self.actions = menu

    async def _fetch_assignment_view(self, action_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Load assignment, case and action view while REFRESHING."""
        assignment = await self.service.fetch_assignment(self.assignment_id)
        self.assignment = assignment
        actions = (assignment or {}).get('actions') or []
        if not actions:
            logger.warning(f"Assignment {self.assignment_id!r} has no actions")
            self._session = None
            self.lifecycle.transition(AssignmentState.EMPTY)
            return assignment

        self.current_action = action_name or actions[0].get('ID')
        self.flow_action = actions[0].get('ID')
        self.fire_change_title()
        self.work_object = await self.service.fetch_case(self.case_id)
        self._set_stages()
        self._set_actions()
        self.view = await self.service.fetch_view_for_action(self.assignment_id, self.current_action)
        await self.install_view((self.view or {}).get('view'))
        self.lifecycle.transition(AssignmentState.LOADED)
        return assignment

    async def load_assignment(self, action_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Open the assignment under action_name (default: its first flow action).

        Returns:
            The assignment, or None when the load failed.
        """
        async with self._round_trip_lock():
            if not self._begin_round_trip(f"load of {self.assignment_id!r}"):
                return None
            try:
                return await self._fetch_assignment_view(action_name)
            except CaseApiError as e:
                self.surface_error(e)
                self.lifecycle.resume()
                return None

    async def refresh_assignment(self, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Post content to the refresh endpoint and install the returned view.

        Returns:
            The refresh response, or None when the refresh failed or was skipped.
        """
        async with self._round_trip_lock():
            previous = self.lifecycle.state
            if not self._begin_round_trip(f"refresh of {self.assignment_id!r}"):
                return None
            try:
                view = await self.service.refresh_assignment(self.assignment_id, self.current_action, body)
            except CaseApiError as e:
                self.surface_error(e)
                self.lifecycle.resume()
                return None
            if not isinstance(view, Mapping):
                logger.error(f"Refresh of {self.assignment_id!r} returned no view: {view!r}")
                self.toast(toast_for_error(InvalidServerResponseError("Refresh returned no view")))
                self.lifecycle.resume()
                return None
            self.view = view
            await self.install_view(view.get('view'))
            self.lifecycle.transition(AssignmentState.EDITING if previous is AssignmentState.EDITING
                                      else AssignmentState.LOADED)
            return view

    def _content_body(self) -> Dict[str, Any]:
        return {'content': self._session.content() if self._session is not None else {}}

    # ========== FIELD EVENTS ==========

    async def handle_field_changed(self, field: FieldDescriptor, value: Any) -> List[Step]:
        """A widget reports a new value: update widget and store, then run the field's actions.

        Returns:
            The pipeline steps that executed.
        """
        session = self._session
        if session is None or not field.reference or not session.owns(field):
            return []
        stored = field.coerce_input(value)
        registration = session.registry.get(field.index)
        if registration is not None:
            await registration.set_value(stored)
        session.store.set(field.reference, stored)
        self.lifecycle.edit()
        self.events.emit(CaseEvent.FIELD_CHANGED, {'reference': field.reference, 'value': stored})
        return await self.pipeline.run(field, stored)

    async def handle_field_clicked(self, field: Optional[FieldDescriptor]) -> List[Step]:
        session = self._session
        if field is None or session is None or not session.owns(field):
            return []
        return await self.pipeline.run(field, session.store.get(field.reference) if field.reference else None)

    def handle_field_blurred(self, reference: Optional[str], value: Any) -> None:
        if not reference or self._session is None:
            return
        self._session.store.set(reference, value)

    async def handle_case_action(self, selected_action: str) -> Optional[Dict[str, Any]]:
        """Case action menu: Refresh re-posts the content, anything else opens that flow action."""
        if selected_action == REFRESH_ACTION:
            return await self.refresh_assignment(self._content_body())
        return await self.load_assignment(selected_action)

    async def handle_grid_action(self, reference: str, reference_type: str, action: str) -> Optional[Dict[str, Any]]:
        """Add or delete a row of a page list, or an entry of a page group."""
        self.events.emit(CaseEvent.LIST_ACTION, {
            'referenceType': reference_type,
            'reference': reference,
            'action': action,
        })
        if self._session is None:
            return None
        body = self._content_body()
        content = body['content']

        if reference_type == RepeatType.LIST:
            rows = get_repeat(content, reference, RepeatType.LIST)
            if action == "add":
                rows.append(blank_row(rows[-1]) if rows else {})
            elif len(rows) > 1:
                rows.pop()
            return await self.refresh_assignment(body)

        group = get_repeat(content, reference, RepeatType.GROUP)
        removing = action == "delete"
        prompt = ("Enter the name of the group to be deleted." if removing
                  else "Enter a name for the group.")
        name = self._prompter(prompt) if self._prompter is not None else None
        if not name:
            return None
        if removing:
            group.pop(name, None)
        else:
            group[name] = {}
        return await self.refresh_assignment(body)

    # ========== SCRIPTS & URLS ==========

    async def run_script(self, function_name: str, params: Dict[str, Any]) -> None:
        handler = self._script_handlers.get(function_name)
        if handler is None:
            logger.warning(f"No script handler registered for {function_name!r}, skipping")
            return
        result = handler(params)
        if inspect.isawaitable(result):
            await result

    def open_url(self, url: str, window_name: Optional[str] = None, window_options: Optional[str] = None) -> None:
        logger.debug(f"Opening {url!r} in window {window_name!r}")
        self._url_opener(url, window_name, window_options)

    # ========== SUBMISSION ==========

    def validate(self) -> bool:
        """Check every registered, editable widget, reporting the invalid ones."""
        if self._session is None:
            return True
        all_valid = True
        for registration in self._session.registry:
            widget = registration.widget
            if widget is None or registration.field.read_only:
                continue
            widget.set_custom_validity("")
            if not widget.check_validity():
                widget.report_validity()
                all_valid = False
        return all_valid

    async def submit(self) -> Optional[Dict[str, Any]]:
        """Validate locally, then perform the current flow action."""
        self.validation_errors = []
        if not self.validate():
            self.validation_errors.append(
                ValidationMessage(message="invalid form data", path="Validation errors"))
            logger.info("Submission blocked by invalid fields")
            return None
        return await self.perform_action()

    async def perform_action(self) -> Optional[Dict[str, Any]]:
        """Submit the content and continue with the next assignment or confirmation page.

        Returns:
            The perform-action response, or None when it failed.
        """
        async with self._round_trip_lock():
            if not self._begin_round_trip(f"perform of {self.current_action!r}"):
                return None
            self.validation_errors = []
            body = self._content_body()
            try:
                result = await self.service.perform_action(self.assignment_id, self.current_action, body) or {}
                self.work_object = await self.service.fetch_case(self.case_id)
                next_assignment = result.get('nextAssignmentID')
                next_page = result.get('nextPageID')
                if next_assignment:
                    self.assignment_id = next_assignment
                    await self._fetch_assignment_view()
                elif next_page:
                    await self._show_confirmation(next_page)
                else:
                    raise InvalidServerResponseError("Invalid server response, please contact your administrator")
            except (CaseApiError, InvalidServerResponseError) as e:
                logger.error(f"Perform action {self.current_action!r} on {self.assignment_id!r} failed: {e}")
                self.surface_error(e)
                self.lifecycle.resume()
                return None
            return result

    async def _show_confirmation(self, page_id: str) -> None:
        self.current_action = CONFIRM_ACTION
        self.fire_change_title()
        page = await self.service.fetch_page(self.case_id, page_id)
        page = dict(page or {})
        page['visible'] = True
        self.view = page
        await self.install_view(page)
        self.lifecycle.transition(AssignmentState.CONFIRMING)

    async def save(self) -> bool:
        """Save the content without advancing the flow."""
        async with self._round_trip_lock():
            if not self._begin_round_trip(f"save of {self.case_id!r}"):
                return False
            self.validation_errors = []
            body = self._content_body()
            etag = (self.work_object or {}).get('etag')
            try:
                await self.service.update_case(self.case_id, body, etag)
                self.work_object = await self.service.fetch_case(self.case_id)
            except CaseApiError as e:
                self.surface_error(e)
                self.lifecycle.resume()
                return False
            self.lifecycle.resume()
        self.toast(Toast.success("Success", f"Work object {short_case_id(self.case_id)} successfully saved"))
        return True

    # ========== NEW WORK ==========

    async def show_new_harness(self, view: Mapping) -> ViewSession:
        """Render the new-work form collecting the initial content of a case."""
        return await self.install_view(view)

    async def create_work(self) -> Optional[Dict[str, Any]]:
        """Create a case of case_type and open its first assignment."""
        async with self._round_trip_lock():
            if not self._begin_round_trip(f"creation of a {self.case_type!r} case"):
                return None
            body = {
                'caseTypeID': self.case_type,
                'processID': self.process_id,
                'content': self._content_body()['content'],
            }
            try:
                new_case = await self.service.create_case(body)
                if not (new_case and new_case.get('ID')):
                    self.toast(toast_for_error("Could not create a new case"))
                    self.lifecycle.resume()
                    self.cancel()
                    return None
                self.case_id = new_case['ID']
                self.assignment_id = new_case.get('nextAssignmentID')
                self.case_type = None
                self.process_id = None
                self.events.emit(CaseEvent.WORK_OBJECT_CREATED, {'caseId': self.case_id})
                await self._fetch_assignment_view()
            except CaseApiError as e:
                self.surface_error(e)
                self.lifecycle.resume()
                self.cancel()
                return None
            return new_case

    # ========== CLOSING ==========

    def close(self, refresh_assignments: bool = False) -> None:
        self.events.emit(CaseEvent.WORK_OBJECT_CLOSED, {'assignmentId': self.assignment_id, 'caseId': self.case_id})
        if refresh_assignments:
            self.events.emit(CaseEvent.REFRESH_ASSIGNMENTS)
        if self.lifecycle.can_transition(AssignmentState.CLOSED):
            self.lifecycle.transition(AssignmentState.CLOSED)

    def cancel(self) -> None:
        self.close()

    def confirm(self) -> None:
        self.close(refresh_assignments=True)
