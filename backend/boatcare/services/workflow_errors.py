"""Typed errors raised by the service-request workflow.

Every workflow error carries a stable ``code`` so the HTTP layer (and any
other caller) can branch on the type instead of parsing messages:

    WorkflowError
    +-- InvalidTransition       intent not legal from the current state for this role
    +-- ValidationFailure       inputs required by the target state are missing/malformed
    +-- ConcurrentModification  the request moved on since the caller read it
    +-- RequestNotFound         unknown request id
    +-- RepositoryFailure       the record store errored or is unreachable

``UnknownStatusError`` is deliberately outside that tree: a status string
that is not in the catalog means corrupted data and must not be handled as
an ordinary workflow outcome.
"""

from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    code = "WORKFLOW_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidTransition(WorkflowError):
    code = "INVALID_TRANSITION"

    def __init__(self, *, current_status: Any, intent: Any, actor_role: Any, reason: str = "") -> None:
        self.current_status = getattr(current_status, "value", current_status)
        self.intent = getattr(intent, "value", intent)
        self.actor_role = getattr(actor_role, "value", actor_role)
        self.reason = reason
        message = f"Intent '{self.intent}' is not allowed for {self.actor_role} from status '{self.current_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "current_status": self.current_status,
                "intent": self.intent,
                "actor_role": self.actor_role,
            }
        )
        return data


class ValidationFailure(WorkflowError):
    code = "VALIDATION_FAILED"

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid or missing fields: {fields}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class ConcurrentModification(WorkflowError):
    code = "CONCURRENT_MODIFICATION"

    def __init__(self, *, request_id: str, expected_status: Any, actual_status: Optional[Any] = None) -> None:
        self.request_id = request_id
        self.expected_status = getattr(expected_status, "value", expected_status)
        self.actual_status = getattr(actual_status, "value", actual_status)
        message = f"Request {request_id} is no longer in status '{self.expected_status}'"
        if self.actual_status is not None:
            message = f"{message} (now '{self.actual_status}')"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"expected_status": self.expected_status, "actual_status": self.actual_status})
        return data


class RequestNotFound(WorkflowError):
    code = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Service request {request_id} not found")


class RepositoryFailure(WorkflowError):
    code = "REPOSITORY_FAILURE"


class UnknownStatusError(ValueError):
    """A persisted status value outside the catalog (data corruption)."""
