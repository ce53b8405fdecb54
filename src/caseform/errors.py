"""Errors of the case container and their user-facing toasts."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from caseapi.errors import CaseServiceError

GENERIC_ERROR_MESSAGE = "An error occurred, please contact your system administrator"
NO_ASSIGNMENTS_ERROR_ID = "Pega_API_023"


class InvalidTransitionError(RuntimeError):
    """Raised when the assignment lifecycle is asked for an illegal move."""

    def __init__(self, source: Any, target: Any):
        self.source = source
        self.target = target
        super().__init__(f"Invalid lifecycle transition: {source} -> {target}")


class InvalidServerResponseError(RuntimeError):
    """Raised when a response has none of the fields the flow continues on."""
    pass


@dataclass(frozen=True)
class Toast:
    title: str
    message: str
    variant: str = "error"
    mode: str = "sticky"

    def to_dict(self) -> Dict[str, str]:
        return {'title': self.title, 'message': self.message, 'variant': self.variant, 'mode': self.mode}

    @classmethod
    def info(cls, title: str, message: str) -> "Toast":
        return cls(title=title, message=message, variant="info", mode="dismissable")

    @classmethod
    def success(cls, title: str, message: str) -> "Toast":
        return cls(title=title, message=message, variant="success", mode="dismissable")


def toast_for_error(error: Any) -> Toast:
    """Error toast for a failure.

    Strings are shown as is. A service error with reported errors shows the
    first one; anything else gets the generic message.
    """
    if isinstance(error, str):
        return Toast(title="Error", message=error)
    if isinstance(error, CaseServiceError) and error.first_error:
        first = error.first_error
        return Toast(title=f"Error, ID: {first.get('ID')}", message=str(first.get('message', '')))
    return Toast(title="Error", message=GENERIC_ERROR_MESSAGE)


def is_no_assignments_error(error: Any) -> bool:
    return (isinstance(error, CaseServiceError)
            and error.first_error is not None
            and error.first_error.get('ID') == NO_ASSIGNMENTS_ERROR_ID)


@dataclass(frozen=True)
class ValidationMessage:
    """One server-side validation message; path is None when not bound to a field."""
    message: str
    path: Optional[str] = None

    @property
    def reference(self) -> Optional[str]:
        if not self.path:
            return None
        return self.path[1:] if self.path.startswith(".") else self.path


def validation_messages(error: CaseServiceError) -> List[List[ValidationMessage]]:
    """ValidationMessages of every reported error, grouped per error."""
    grouped = []
    for entry in error.errors:
        messages = entry.get('ValidationMessages')
        if not isinstance(messages, list):
            continue
        grouped.append([
            ValidationMessage(message=str(m.get('ValidationMessage', '')), path=m.get('Path') or None)
            for m in messages
            if isinstance(m, dict)
        ])
    return grouped
