"""
Field action pipeline.

A field's control carries action sets configured on the server. When the
field changes (or is clicked) its supported actions are compiled into a
closed list of steps and executed strictly in order:

    SetValueStep      write store values and push them to widgets
    RefreshStep       post the content, install the returned view
    PerformActionStep reload the assignment under another flow action
    RunScriptStep     call a host-registered script handler
    OpenUrlStep       hand a built URL to the host's URL opener
    PropagateStep     always last: cascade the change along the graph

Only the first postValue/refresh of a field produces a RefreshStep. A step
that fails (the container has already surfaced the error) stops the chain.
The final propagation is skipped once a step has replaced the view, since
the change it would cascade belongs to a discarded graph.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Type, Union

from caseform.options import decode_html
from caseform.reference_store import ReferenceStore
from caseform.session import ViewSession
from caseform.view_model import FieldDescriptor, expand_relative_path

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    SET_VALUE = "setValue"
    POST_VALUE = "postValue"
    REFRESH = "refresh"
    TAKE_ACTION = "takeAction"
    RUN_SCRIPT = "runScript"
    OPEN_URL = "openUrlInWindow"

    @classmethod
    def parse(cls, name: Any) -> Optional["ActionKind"]:
        """Supported kind for an action name, None for anything else."""
        if name == "openUrl":
            return cls.OPEN_URL
        try:
            return cls(name)
        except ValueError:
            return None


# ========== STEPS ==========

@dataclass(frozen=True)
class SetValueStep:
    pairs: Tuple[Mapping, ...] = ()


@dataclass(frozen=True)
class RefreshStep:
    refresh_for: Optional[str] = None


@dataclass(frozen=True)
class PerformActionStep:
    action_name: Optional[str] = None


@dataclass(frozen=True)
class RunScriptStep:
    function_name: Optional[str] = None
    params: Tuple[Mapping, ...] = ()


@dataclass(frozen=True)
class OpenUrlStep:
    process: Mapping = field(default_factory=dict)


@dataclass(frozen=True)
class PropagateStep:
    pass


Step = Union[SetValueStep, RefreshStep, PerformActionStep, RunScriptStep, OpenUrlStep, PropagateStep]


def _tuple_of_mappings(value: Any) -> Tuple[Mapping, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, Mapping))


def build_steps(field_descriptor: FieldDescriptor) -> List[Step]:
    """Compile a field's supported actions into steps, terminated by PropagateStep."""
    steps: List[Step] = []
    has_refresh = False
    for action_set in field_descriptor.control.action_sets:
        for action in action_set.actions:
            kind = ActionKind.parse(action.name)
            process = action.action_process
            if kind is ActionKind.SET_VALUE:
                steps.append(SetValueStep(pairs=_tuple_of_mappings(process.get('setValuePairs'))))
            elif kind in (ActionKind.POST_VALUE, ActionKind.REFRESH):
                if not has_refresh:
                    refresh_for = action.refresh_for if kind is ActionKind.REFRESH else None
                    steps.append(RefreshStep(refresh_for=refresh_for))
                    has_refresh = True
            elif kind is ActionKind.TAKE_ACTION:
                steps.append(PerformActionStep(action_name=process.get('actionName')))
            elif kind is ActionKind.RUN_SCRIPT:
                steps.append(RunScriptStep(
                    function_name=process.get('functionName'),
                    params=_tuple_of_mappings(process.get('functionParameters')),
                ))
            elif kind is ActionKind.OPEN_URL:
                steps.append(OpenUrlStep(process=process))
    steps.append(PropagateStep())
    return steps


# ========== VALUE RESOLUTION ==========

def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def resolve_property_value(store: ReferenceStore, property_value: Any,
                           value_reference: Optional[Mapping] = None) -> Any:
    """Resolve an action operand.

    A quoted string is a literal. Anything else is looked up in the store;
    with a value_reference a miss falls back to its lastSavedValue (or None),
    without one a miss yields the raw property.
    """
    if isinstance(property_value, bool) or property_value is None:
        return property_value
    if not isinstance(property_value, str):
        return property_value
    if property_value.startswith('"'):
        return property_value.replace('"', '')

    value = store.get(expand_relative_path(property_value))
    if value_reference is not None and _is_missing(value):
        last_saved = value_reference.get('lastSavedValue')
        return decode_html(last_saved) if last_saved else None
    if _is_missing(value):
        return property_value
    return value


def resolve_set_value_pair(store: ReferenceStore, pair: Mapping) -> Tuple[Optional[str], Any]:
    """Target reference and value of one setValuePairs entry."""
    target = expand_relative_path(pair.get('name'))
    value_reference = pair.get('valueReference')
    if isinstance(value_reference, Mapping):
        reference = value_reference.get('reference')
        value = resolve_property_value(store, reference)
        if _is_missing(value) or value == reference:
            value = decode_html(value_reference.get('lastSavedValue'))
    else:
        value = resolve_property_value(store, pair.get('value'))
    return target, value


def build_open_url(process: Mapping, store: ReferenceStore) -> Optional[str]:
    """URL of an openUrlInWindow action, or None when none can be resolved."""
    url = None
    domain = process.get('alternateDomain')
    if isinstance(domain, Mapping):
        url = domain.get('url')
        url_reference = domain.get('urlReference')
        if not url and isinstance(url_reference, Mapping):
            url = resolve_property_value(store, url_reference.get('reference'), url_reference)
            if not url:
                url = decode_html(url_reference.get('lastSavedValue'))
    if not url or not isinstance(url, str):
        return None
    if not url.startswith("http"):
        url = "http://" + url.replace('"', '')

    query = []
    for param in _tuple_of_mappings(process.get('queryParams')):
        value = param.get('value')
        value_reference = param.get('valueReference')
        value_reference = value_reference if isinstance(value_reference, Mapping) else {}
        if not value and value_reference.get('reference'):
            value = resolve_property_value(store, value_reference['reference'], value_reference)
        if not value:
            value = decode_html(value_reference.get('lastSavedValue'))
        query.append(f"{param.get('name')}={value}".replace('"', ''))
    if query:
        url += "?" + "&".join(query)
    return url


# ========== EXECUTION ==========

class PipelineHost(Protocol):
    """What the pipeline needs from the case container."""

    @property
    def session(self) -> Optional[ViewSession]: ...

    async def refresh_assignment(self, body: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    async def load_assignment(self, action_name: Optional[str] = None) -> Optional[Dict[str, Any]]: ...

    async def run_script(self, function_name: str, params: Dict[str, Any]) -> None: ...

    def open_url(self, url: str, window_name: Optional[str] = None, window_options: Optional[str] = None) -> None: ...

    async def propagate(self, field: FieldDescriptor, value: Any) -> Any: ...


class ActionPipeline:
    """Executes compiled steps for one field event against a host."""

    def __init__(self, host: PipelineHost):
        self.host = host
        self._handlers: Dict[Type, Callable[[Any, FieldDescriptor, Any], Awaitable[bool]]] = {
            SetValueStep: self._set_value,
            RefreshStep: self._refresh,
            PerformActionStep: self._perform_action,
            RunScriptStep: self._run_script,
            OpenUrlStep: self._open_url,
            PropagateStep: self._propagate,
        }

    async def run(self, field_descriptor: FieldDescriptor, value: Any,
                  steps: Optional[Sequence[Step]] = None) -> List[Step]:
        """Run steps (default: compiled from the field) in order.

        Returns:
            The steps that actually executed.
        """
        if steps is None:
            steps = build_steps(field_descriptor)
        session = self.host.session
        executed: List[Step] = []
        for step in steps:
            if isinstance(step, PropagateStep) and self.host.session is not session:
                logger.debug(f"View replaced while handling {field_descriptor.reference!r}, skipping propagation")
                break
            succeeded = await self.execute(step, field_descriptor, value)
            executed.append(step)
            if not succeeded:
                logger.debug(f"Action chain of {field_descriptor.reference!r} stopped at {type(step).__name__}")
                break
        return executed

    async def execute(self, step: Step, field_descriptor: FieldDescriptor, value: Any) -> bool:
        """Dispatch one step; False stops the chain."""
        handler = self._handlers[type(step)]
        return await handler(step, field_descriptor, value)

    async def _set_value(self, step: SetValueStep, field_descriptor: FieldDescriptor, value: Any) -> bool:
        session = self.host.session
        if session is None:
            return False
        for pair in step.pairs:
            target, resolved = resolve_set_value_pair(session.store, pair)
            if not target:
                continue
            session.store.set(target, resolved)
            for registration in session.registry.for_reference(target):
                await registration.set_value(resolved)
        return True

    async def _refresh(self, step: RefreshStep, field_descriptor: FieldDescriptor, value: Any) -> bool:
        session = self.host.session
        if session is None:
            return False
        body: Dict[str, Any] = {'content': session.content()}
        if step.refresh_for:
            body['refreshFor'] = step.refresh_for
        return await self.host.refresh_assignment(body) is not None

    async def _perform_action(self, step: PerformActionStep, field_descriptor: FieldDescriptor, value: Any) -> bool:
        return await self.host.load_assignment(step.action_name) is not None

    async def _run_script(self, step: RunScriptStep, field_descriptor: FieldDescriptor, value: Any) -> bool:
        session = self.host.session
        if not step.function_name or session is None:
            return True
        params = {}
        for param in step.params:
            value_reference = param.get('valueReference')
            if isinstance(value_reference, Mapping) and value_reference.get('reference'):
                params[param.get('name')] = resolve_property_value(
                    session.store, value_reference['reference'], value_reference)
            else:
                params[param.get('name')] = resolve_property_value(session.store, param.get('value'))
        await self.host.run_script(step.function_name, params)
        return True

    async def _open_url(self, step: OpenUrlStep, field_descriptor: FieldDescriptor, value: Any) -> bool:
        session = self.host.session
        if session is None:
            return False
        url = build_open_url(step.process, session.store)
        if url is None:
            logger.warning(f"No URL resolved for open-url action of {field_descriptor.reference!r}")
            return True
        self.host.open_url(url, step.process.get('windowName'), step.process.get('windowOptions'))
        return True

    async def _propagate(self, step: PropagateStep, field_descriptor: FieldDescriptor, value: Any) -> bool:
        await self.host.propagate(field_descriptor, value)
        return True
