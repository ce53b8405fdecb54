"""Pytest configuration and shared fixtures."""
import copy
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from caseapi.config import clear_service_configs
from caseapi.errors import CaseServiceError
from caseform.events import EventBus, EventRecorder
from caseform.options import Option, OptionRefresh


# ========== VIEW BUILDERS ==========

def editable_mode() -> Dict[str, Any]:
    return {"modeType": "editable"}


def text_field(reference: str, value: Any = "", required: bool = False, read_only: bool = False,
               actions: Optional[List[Dict[str, Any]]] = None, control_type: str = "pxTextInput",
               field_type: str = "Text") -> Dict[str, Any]:
    control: Dict[str, Any] = {"type": control_type, "modes": [editable_mode()]}
    if actions:
        control["actionSets"] = [{"events": [{"event": "change"}], "actions": actions}]
    return {
        "reference": reference,
        "type": field_type,
        "value": value,
        "required": required,
        "readOnly": read_only,
        "visible": True,
        "testID": f"test-{reference}",
        "control": control,
    }


def lookup_field(reference: str, data_page_id: str, params: List[Tuple[str, str]],
                 value: Any = "", prompt: str = ".pyLabel", value_prop: str = ".pyValue") -> Dict[str, Any]:
    """Dropdown sourced from a data page; params are (name, source reference) pairs."""
    return {
        "reference": reference,
        "type": "Text",
        "value": value,
        "visible": True,
        "control": {
            "type": "pxDropdown",
            "modes": [{
                "modeType": "editable",
                "listSource": "datapage",
                "dataPageID": data_page_id,
                "dataPageValue": value_prop,
                "dataPagePrompt": prompt,
                "dataPageParams": [
                    {"name": name, "valueReference": {"reference": source, "lastSavedValue": ""}}
                    for name, source in params
                ],
            }],
        },
    }


def local_list_field(reference: str, options: List[Tuple[str, str]], value: Any = "") -> Dict[str, Any]:
    return {
        "reference": reference,
        "type": "Text",
        "value": value,
        "visible": True,
        "control": {
            "type": "pxDropdown",
            "modes": [{
                "modeType": "editable",
                "listSource": "locallist",
                "options": [{"key": key, "value": label} for key, label in options],
            }],
        },
    }


def view_of(*fields: Dict[str, Any]) -> Dict[str, Any]:
    return {"visible": True, "groups": [{"field": f} for f in fields]}


def refresh_action(refresh_for: Optional[str] = None) -> Dict[str, Any]:
    action: Dict[str, Any] = {"action": "refresh", "actionProcess": {}}
    if refresh_for:
        action["refreshFor"] = refresh_for
    return action


def set_value_action(*pairs: Dict[str, Any]) -> Dict[str, Any]:
    return {"action": "setValue", "actionProcess": {"setValuePairs": list(pairs)}}


def rows(*values: str) -> Dict[str, Any]:
    return {"pxResults": [{"pyValue": v, "pyLabel": v.upper()} for v in values]}


def validation_error(*messages: Tuple[Optional[str], str]) -> CaseServiceError:
    return CaseServiceError(422, {"errors": [{
        "ID": "Pega_API_055",
        "message": "Validation failed",
        "ValidationMessages": [
            dict({"ValidationMessage": text}, **({"Path": path} if path else {}))
            for path, text in messages
        ],
    }]})


# ========== COLLABORATORS ==========

class RecordingSetValue:
    """set_value hook recording every call; OptionRefresh answered from options_for."""

    def __init__(self, options_for: Optional[Callable[[OptionRefresh], List[Option]]] = None):
        self.calls: List[Any] = []
        self.value: Any = None
        self._options_for = options_for

    async def __call__(self, value: Any) -> Any:
        self.calls.append(value)
        if isinstance(value, OptionRefresh):
            self.value = ""
            return self._options_for(value) if self._options_for else []
        self.value = value
        return value

    @property
    def refreshes(self) -> List[OptionRefresh]:
        return [c for c in self.calls if isinstance(c, OptionRefresh)]

    @property
    def values(self) -> List[Any]:
        return [c for c in self.calls if not isinstance(c, OptionRefresh)]


class FakeCaseService:
    """In-memory case engine. Responses that are exceptions are raised."""

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self.assignments: Dict[str, Any] = {}
        self.cases: Dict[str, Any] = {}
        self.action_views: Dict[Tuple[str, str], Any] = {}
        self.pages: Dict[str, Any] = {}
        self.data_pages: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.refresh_response: Any = None
        self.perform_response: Any = {}
        self.update_response: Any = None
        self.create_response: Any = None
        self.next_assignment: Any = None

    def _answer(self, value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    def calls_to(self, name: str) -> List[tuple]:
        return [args for called, args in self.calls if called == name]

    async def fetch_assignment(self, assignment_id):
        self.calls.append(("fetch_assignment", (assignment_id,)))
        return self._answer(self.assignments.get(assignment_id))

    async def fetch_next_assignment(self):
        self.calls.append(("fetch_next_assignment", ()))
        return self._answer(self.next_assignment)

    async def fetch_case(self, case_id):
        self.calls.append(("fetch_case", (case_id,)))
        return self._answer(self.cases.get(case_id, {"ID": case_id, "stages": []}))

    async def fetch_view_for_action(self, assignment_id, action_id):
        self.calls.append(("fetch_view_for_action", (assignment_id, action_id)))
        return self._answer(self.action_views.get((assignment_id, action_id)))

    async def refresh_assignment(self, assignment_id, action_id, body):
        self.calls.append(("refresh_assignment", (assignment_id, action_id, copy.deepcopy(body))))
        return self._answer(self.refresh_response)

    async def perform_action(self, assignment_id, action_id, body):
        self.calls.append(("perform_action", (assignment_id, action_id, copy.deepcopy(body))))
        return self._answer(self.perform_response)

    async def fetch_page(self, case_id, page_id):
        self.calls.append(("fetch_page", (case_id, page_id)))
        return self._answer(self.pages.get(page_id))

    async def update_case(self, case_id, body, etag=None):
        self.calls.append(("update_case", (case_id, copy.deepcopy(body), etag)))
        return self._answer(self.update_response)

    async def create_case(self, body):
        self.calls.append(("create_case", (copy.deepcopy(body),)))
        return self._answer(self.create_response)

    async def fetch_options(self, data_page_id, params=None):
        self.calls.append(("fetch_options", (data_page_id, dict(params or {}))))
        handler = self.data_pages.get(data_page_id)
        if handler is None:
            return {"pxResults": []}
        return self._answer(handler(dict(params or {})))


ASSIGNMENT_ID = "ASSIGN-WORKLIST ORG-APP-WORK C-12!FLOW"
CASE_ID = "ORG-APP-WORK C-12"
FLOW_ACTION = "Details"


def seed_assignment(service: FakeCaseService, view: Dict[str, Any], assignment_id: str = ASSIGNMENT_ID,
                    action_id: str = FLOW_ACTION) -> None:
    """Register an assignment whose first flow action renders view."""
    service.assignments[assignment_id] = {
        "ID": assignment_id,
        "name": "Review order",
        "actions": [{"ID": action_id, "name": "Enter details"}, {"ID": "Escalate", "name": "Escalate"}],
    }
    service.cases[CASE_ID] = {
        "ID": CASE_ID,
        "stage": "PRIM0",
        "stages": [{"ID": "PRIM0", "name": "Create"}, {"ID": "PRIM1", "name": "Review"}],
        "etag": '"etag-1"',
        "content": {"Items": [{"Name": "a"}]},
    }
    service.action_views[(assignment_id, action_id)] = {"view": view}


# ========== FIXTURES ==========

@pytest.fixture(autouse=True)
def reset_service_configs():
    """Forget registered endpoints after each test."""
    yield
    clear_service_configs()


@pytest.fixture
def service():
    return FakeCaseService()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def recorder(events):
    return EventRecorder(events)


@pytest.fixture
def cascade_view():
    """Country → State → City lookups plus two inputs sharing Status."""
    return view_of(
        local_list_field("Country", [("FR", "France"), ("DE", "Germany")]),
        lookup_field("State", "D_States", [("Country", ".Country")]),
        lookup_field("City", "D_Cities", [("State", ".State")]),
        text_field("Status"),
        text_field("Status"),
        text_field("Name", required=True),
    )
