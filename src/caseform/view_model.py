"""
Immutable descriptors for server-described views.

This module turns the raw view JSON returned by the case engine into typed,
frozen records. Descriptors are created once per render cycle and replaced
wholesale when a new view arrives.

Design Philosophy: Tolerant by Construction
- Every from_dict() accepts partial or malformed metadata without raising
- Missing collections become empty tuples, missing scalars become None
- Field kinds are a closed enumeration with one traits table
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple


def expand_relative_path(path: Optional[str]) -> Optional[str]:
    """Strip the leading '.' the server uses for page-relative references."""
    if isinstance(path, str) and path.startswith("."):
        return path[1:]
    return path


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class ListSource(str, Enum):
    DATAPAGE = "datapage"
    PAGELIST = "pageList"
    CONSTANT = "constant"
    LOCAL_LIST = "locallist"
    TEXT = "Text"


class FieldKind(str, Enum):
    """Closed set of control types the case engine emits."""
    TEXT_INPUT = "pxTextInput"
    DROPDOWN = "pxDropdown"
    CHECKBOX = "pxCheckbox"
    TEXT_AREA = "pxTextArea"
    EMAIL = "pxEmail"
    DATE_TIME = "pxDateTime"
    INTEGER = "pxInteger"
    PERCENT = "pxPercentage"
    PHONE = "pxPhone"
    DISPLAY_TEXT = "pxDisplayText"
    HIDDEN = "pxHidden"
    BUTTON = "pxButton"
    LINK = "pxLink"
    URL = "pxURL"
    ICON = "pxIcon"
    RADIO_BUTTONS = "pxRadioButtons"
    AUTOCOMPLETE = "pxAutoComplete"
    CURRENCY = "pxCurrency"
    NUMBER = "pxNumber"
    UNKNOWN = ""

    @classmethod
    def parse(cls, control_type: Any) -> "FieldKind":
        try:
            return cls(control_type)
        except ValueError:
            return cls.UNKNOWN


def _keep(value: Any, field: "FieldDescriptor") -> Any:
    return value


def _checkbox_input(value: Any, field: "FieldDescriptor") -> Any:
    return _as_bool(value)


def _date_time_input(value: Any, field: "FieldDescriptor") -> Any:
    # Date-only properties are posted as YYYYMMDD
    if field.type == "Date" and isinstance(value, str):
        return value.replace("-", "")
    return value


@dataclass(frozen=True)
class KindTraits:
    """Behavior of one field kind.

    validatable: the widget carries built-in validity (required, format)
    has_options: the widget presents an option list
    coerce_input: converts a raw widget value into the stored value
    """
    validatable: bool = False
    has_options: bool = False
    coerce_input: Callable[[Any, "FieldDescriptor"], Any] = _keep


KIND_TRAITS: Dict[FieldKind, KindTraits] = {
    FieldKind.TEXT_INPUT: KindTraits(validatable=True),
    FieldKind.DROPDOWN: KindTraits(validatable=True, has_options=True),
    FieldKind.CHECKBOX: KindTraits(validatable=True, coerce_input=_checkbox_input),
    FieldKind.TEXT_AREA: KindTraits(validatable=True),
    FieldKind.EMAIL: KindTraits(validatable=True),
    FieldKind.DATE_TIME: KindTraits(validatable=True, coerce_input=_date_time_input),
    FieldKind.INTEGER: KindTraits(validatable=True),
    FieldKind.PERCENT: KindTraits(),
    FieldKind.PHONE: KindTraits(),
    FieldKind.DISPLAY_TEXT: KindTraits(validatable=True),
    FieldKind.HIDDEN: KindTraits(),
    FieldKind.BUTTON: KindTraits(),
    FieldKind.LINK: KindTraits(),
    FieldKind.URL: KindTraits(validatable=True),
    FieldKind.ICON: KindTraits(),
    FieldKind.RADIO_BUTTONS: KindTraits(validatable=True, has_options=True),
    FieldKind.AUTOCOMPLETE: KindTraits(has_options=True),
    FieldKind.CURRENCY: KindTraits(),
    FieldKind.NUMBER: KindTraits(),
    FieldKind.UNKNOWN: KindTraits(),
}


@dataclass(frozen=True)
class ValueReference:
    reference: Optional[str]
    last_saved_value: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ValueReference"]:
        data = _as_mapping(data)
        if not data:
            return None
        return cls(
            reference=expand_relative_path(data.get("reference")) or None,
            last_saved_value=data.get("lastSavedValue"),
        )


@dataclass(frozen=True)
class DataPageParam:
    """One named parameter of a data page lookup."""
    name: Optional[str]
    value: Any = None
    value_reference: Optional[ValueReference] = None

    @property
    def source_reference(self) -> Optional[str]:
        return self.value_reference.reference if self.value_reference else None

    @classmethod
    def from_dict(cls, data: Any) -> "DataPageParam":
        data = _as_mapping(data)
        return cls(
            name=data.get("name"),
            value=data.get("value"),
            value_reference=ValueReference.from_dict(data.get("valueReference")),
        )


@dataclass(frozen=True)
class ControlMode:
    """How a control sources its options and which references feed them."""
    mode_type: Optional[str] = None
    list_source: Optional[str] = None
    data_page_id: Optional[str] = None
    data_page_value: Optional[str] = None
    data_page_prompt: Optional[str] = None
    data_page_params: Tuple[DataPageParam, ...] = ()
    options: Tuple[Tuple[Any, Any], ...] = ()  # (key, value) pairs of a local list
    clipboard_page_id: Optional[str] = None
    clipboard_page_prompt: Optional[str] = None
    clipboard_page_value: Optional[str] = None
    raw: Mapping = field(default_factory=dict, compare=False, repr=False)

    @property
    def has_dependent_lookup(self) -> bool:
        return bool(self.data_page_id and self.data_page_params)

    def param_sources(self) -> Iterator[str]:
        """References feeding this mode's data page parameters."""
        for param in self.data_page_params:
            if param.source_reference:
                yield param.source_reference

    @classmethod
    def from_dict(cls, data: Any) -> "ControlMode":
        data = _as_mapping(data)
        options = tuple(
            (opt.get("key"), opt.get("value"))
            for opt in _as_list(data.get("options"))
            if isinstance(opt, Mapping)
        )
        return cls(
            mode_type=data.get("modeType"),
            list_source=data.get("listSource"),
            data_page_id=data.get("dataPageID"),
            data_page_value=data.get("dataPageValue"),
            data_page_prompt=data.get("dataPagePrompt"),
            data_page_params=tuple(DataPageParam.from_dict(p) for p in _as_list(data.get("dataPageParams"))),
            options=options,
            clipboard_page_id=data.get("clipboardPageID"),
            clipboard_page_prompt=data.get("clipboardPagePrompt"),
            clipboard_page_value=data.get("clipboardPageValue"),
            raw=data,
        )


@dataclass(frozen=True)
class Action:
    """One configured action inside an action set."""
    name: Optional[str]
    action_process: Mapping = field(default_factory=dict)
    refresh_for: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Action":
        data = _as_mapping(data)
        return cls(
            name=data.get("action"),
            action_process=_as_mapping(data.get("actionProcess")),
            refresh_for=data.get("refreshFor"),
        )


@dataclass(frozen=True)
class ActionSet:
    """Actions bound to a set of UI events (click, change, ...)."""
    actions: Tuple[Action, ...] = ()
    events: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "ActionSet":
        data = _as_mapping(data)
        events = tuple(
            e.get("event") if isinstance(e, Mapping) else e
            for e in _as_list(data.get("events"))
        )
        return cls(
            actions=tuple(Action.from_dict(a) for a in _as_list(data.get("actions"))),
            events=events,
        )


@dataclass(frozen=True)
class Control:
    type: Optional[str] = None
    modes: Tuple[ControlMode, ...] = ()
    action_sets: Tuple[ActionSet, ...] = ()

    @property
    def kind(self) -> FieldKind:
        return FieldKind.parse(self.type)

    @property
    def traits(self) -> KindTraits:
        return KIND_TRAITS[self.kind]

    @property
    def first_mode(self) -> Optional[ControlMode]:
        return self.modes[0] if self.modes else None

    @classmethod
    def from_dict(cls, data: Any) -> "Control":
        data = _as_mapping(data)
        return cls(
            type=data.get("type"),
            modes=tuple(ControlMode.from_dict(m) for m in _as_list(data.get("modes"))),
            action_sets=tuple(ActionSet.from_dict(s) for s in _as_list(data.get("actionSets"))),
        )


@dataclass(frozen=True)
class FieldDescriptor:
    """Immutable description of one rendered field.

    index is the graph node identity: unique within one view instance.
    Several descriptors may share a reference (repeated rows, mirrored inputs).
    """
    index: int
    reference: Optional[str]
    type: Optional[str] = None
    control: Control = field(default_factory=Control)
    value: Any = None
    required: bool = False
    read_only: bool = False
    visible: bool = True
    label: Optional[str] = None
    test_id: Optional[str] = None
    field_id: Optional[str] = None

    @property
    def kind(self) -> FieldKind:
        return self.control.kind

    @property
    def has_modes(self) -> bool:
        return bool(self.control.modes)

    def coerce_input(self, value: Any) -> Any:
        """Convert a raw widget value into the value stored for this field."""
        return self.control.traits.coerce_input(value, self)

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "FieldDescriptor":
        data = _as_mapping(data)
        return cls(
            index=index,
            reference=expand_relative_path(data.get("reference")) or None,
            type=data.get("type"),
            control=Control.from_dict(data.get("control")),
            value=data.get("value"),
            required=_as_bool(data.get("required", False)),
            read_only=_as_bool(data.get("readOnly", False)),
            visible=_as_bool(data.get("visible", True)),
            label=data.get("label"),
            test_id=data.get("testID"),
            field_id=data.get("fieldID"),
        )


def iter_view_fields(node: Any) -> Iterator[Mapping]:
    """Yield raw field dicts of a view tree in depth-first render order.

    The tree nests groups of ``{"field"}``, ``{"layout"}``, ``{"view"}``,
    ``{"paragraph"}`` and ``{"caption"}`` items; layouts hold ``groups`` or
    repeating ``rows`` of groups.
    """
    node = _as_mapping(node)
    if not node:
        return
    for group in _as_list(node.get("groups")):
        group = _as_mapping(group)
        if isinstance(group.get("field"), Mapping):
            yield group["field"]
        if isinstance(group.get("layout"), Mapping):
            yield from iter_view_fields(group["layout"])
        if isinstance(group.get("view"), Mapping):
            yield from iter_view_fields(group["view"])
    header = node.get("header")
    if isinstance(header, Mapping):
        yield from iter_view_fields(header)
    for row in _as_list(node.get("rows")):
        yield from iter_view_fields(row)
    if isinstance(node.get("view"), Mapping):
        yield from iter_view_fields(node["view"])


def describe_fields(view: Any) -> List[FieldDescriptor]:
    """Build descriptors for every field in a view, indexed from 1."""
    return [
        FieldDescriptor.from_dict(raw, index=i)
        for i, raw in enumerate(iter_view_fields(view), start=1)
    ]
