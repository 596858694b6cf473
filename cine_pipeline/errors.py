"""
Error taxonomy for the story pipeline.

- InputError: caller data fails schema checks (never costs a generation call)
- ProviderError: a generation backend failed; surfaced without retry
- ConstraintViolation: hard validation findings that block persistence
- ExtractionError: no JSON value could be pulled out of generated text
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class CinePipelineError(Exception):
    """Base class for every error raised by this package."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Optional[Any]:
        return None


class InputError(CinePipelineError):
    """Caller-supplied data failed validation before any generation call."""
    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.field_errors = details or []

    def details(self) -> Optional[Any]:
        return self.field_errors or None


class RecordNotFound(InputError):
    status_code = 404

    def __init__(self, entity_kind: str, key: Any):
        super().__init__(f"{entity_kind.capitalize()} not found: {key}")
        self.entity_kind = entity_kind
        self.key = key


class ProviderError(CinePipelineError):
    """A generation backend errored (non-2xx, timeout, malformed body)."""
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, provider: str = "", payload: Any = None):
        super().__init__(message)
        self.status = status
        self.provider = provider
        self.payload = payload

    def details(self) -> Optional[Any]:
        if self.status is None and self.payload is None:
            return None
        return {"provider": self.provider, "status": self.status, "upstream": self.payload}


class ConstraintViolation(CinePipelineError):
    """Hard validation errors; carries the structured issues, not just a string."""
    status_code = 422

    def __init__(self, errors: List[Any], report: Any = None):
        messages = ", ".join(e.message for e in errors)
        super().__init__(f"Validation failed: {messages}")
        self.errors = list(errors)
        self.report = report

    def details(self) -> Optional[Any]:
        return [e.model_dump(by_alias=True, exclude_none=True) for e in self.errors]


class ExtractionError(CinePipelineError):
    """Raised when generated text holds no parseable JSON value."""


def to_error_payload(exc: CinePipelineError) -> Dict[str, Any]:
    """Render an error as the `{error, message, details?}` response body."""
    payload: Dict[str, Any] = {"error": True, "message": exc.message}
    details = exc.details()
    if details is not None:
        payload["details"] = details
    return payload
