"""Error types raised at the case engine boundary."""
from typing import Any, Dict, List, Optional


class CaseApiError(RuntimeError):
    """Base class for every failure talking to the case engine."""
    pass


class CaseTransportError(CaseApiError):
    """Raised when the request never produced an HTTP response."""
    pass


class CaseServiceError(CaseApiError):
    """Raised for a non-success HTTP status, or a success body that cannot be decoded.

    ``payload`` holds the decoded response body. The case engine reports
    failures as ``{"errors": [{"ID", "message", "ValidationMessages"?}]}``.
    """

    def __init__(self, status_code: int, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(self._describe())

    def _describe(self) -> str:
        first = self.first_error
        if first:
            return f"HTTP {self.status_code}: {first.get('ID', '')} {first.get('message', '')}".strip()
        return f"HTTP {self.status_code}"

    @property
    def errors(self) -> List[Dict[str, Any]]:
        if isinstance(self.payload, dict):
            errors = self.payload.get("errors")
            if isinstance(errors, list):
                return [e for e in errors if isinstance(e, dict)]
        return []

    @property
    def first_error(self) -> Optional[Dict[str, Any]]:
        errors = self.errors
        return errors[0] if errors else None

    @property
    def is_validation_error(self) -> bool:
        """True when the first reported error carries ValidationMessages."""
        first = self.first_error
        return bool(first and first.get("ValidationMessages"))
