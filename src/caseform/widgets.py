"""
Headless field widgets.

A widget is whatever displays one field. The core only needs:
- an async set_value hook (plain value, or OptionRefresh to re-fetch options)
- built-in validity: check_validity / set_custom_validity / report_validity

FieldWidget is the reference implementation used by non-graphical front ends
and by the tests. Presentation (labels, formatting, layout) is out of scope.
"""

import logging
from typing import Any, List, Optional, Protocol, TYPE_CHECKING, runtime_checkable

from caseform.options import Option, OptionRefresh, OptionResolver
from caseform.view_model import FieldDescriptor

if TYPE_CHECKING:
    from caseform.container import CaseContainer

logger = logging.getLogger(__name__)


@runtime_checkable
class BoundWidget(Protocol):
    """What validation routing and submission need from a widget."""

    def set_custom_validity(self, message: str) -> None: ...

    def check_validity(self) -> bool: ...

    def report_validity(self) -> bool: ...


class FieldWidget:
    """Headless widget holding the displayed value and options of one field."""

    def __init__(self, field: FieldDescriptor, resolver: Optional[OptionResolver] = None):
        self.field = field
        self.resolver = resolver
        self.value: Any = field.value
        self.options: List[Option] = []
        self.custom_validity: str = ""
        self.reported: List[str] = []

    def __repr__(self) -> str:
        return f"FieldWidget(index={self.field.index}, reference={self.field.reference!r}, value={self.value!r})"

    async def set_value(self, value: Any) -> Any:
        """Display a new value, or re-fetch options for an OptionRefresh.

        Returns:
            The option list for a refresh (the current value is cleared),
            otherwise the value itself.
        """
        if isinstance(value, OptionRefresh):
            self.options = []
            options = await self.load_options(value)
            self.value = ""
            return options
        self.value = value
        return value

    async def load_options(self, refresh: Optional[OptionRefresh] = None) -> List[Option]:
        if self.resolver is None:
            return []
        self.options = await self.resolver.resolve(self.field, refresh)
        return self.options

    # ========== VALIDITY ==========

    def set_custom_validity(self, message: str) -> None:
        self.custom_validity = message or ""

    def check_validity(self) -> bool:
        if self.custom_validity:
            return False
        if self.field.required and not self.field.read_only and self.value in (None, ""):
            return False
        return True

    def report_validity(self) -> bool:
        valid = self.check_validity()
        if not valid:
            message = self.custom_validity or "Complete this field."
            self.reported.append(message)
            logger.debug(f"Field {self.field.reference!r} reports: {message}")
        return valid

    # ========== BINDING ==========

    async def bind(self, container: "CaseContainer") -> None:
        """Register with the container, then load the initial option list.

        Kinds without built-in validity register without a widget, so
        submission and validation routing skip them.
        """
        traits = self.field.control.traits
        container.register_component(
            self.field.reference,
            self.field,
            self if traits.validatable else None,
            self.set_value,
        )
        if traits.has_options:
            await self.load_options()


async def render_view(container: "CaseContainer") -> List[FieldWidget]:
    """Create and bind a FieldWidget for every field of the current view."""
    session = container.session
    if session is None:
        return []
    widgets = []
    for field in session.fields:
        if not field.reference:
            continue
        widget = FieldWidget(field, container.option_resolver)
        await widget.bind(container)
        widgets.append(widget)
    return widgets
