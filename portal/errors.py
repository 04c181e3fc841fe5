"""Error taxonomy shared by the management UI and the privileged API."""
from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional

from fastapi import status


class PortalError(Exception):
    """Base class for failures surfaced to an operator."""

    code = "internal"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, object]:
        return {"error": {"status": self.code, "message": self.message}}


class Unauthenticated(PortalError):
    code = "unauthenticated"
    http_status = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(PortalError):
    code = "permission-denied"
    http_status = status.HTTP_403_FORBIDDEN


class InvalidArgument(PortalError):
    code = "invalid-argument"
    http_status = status.HTTP_400_BAD_REQUEST


class QueryFailed(PortalError):
    """A read against the document store failed."""


class MutationFailed(PortalError):
    """A single-entity write failed."""


class WorkflowFailed(PortalError):
    """An approve/reject transition could not be applied."""

    code = "failed-precondition"
    http_status = status.HTTP_409_CONFLICT


class InvalidTransition(WorkflowFailed):
    """The application is not in a state that allows the transition."""


class LookupFailed(PortalError):
    code = "unknown"


class StatsFailed(PortalError):
    """One or more dashboard metrics could not be computed."""

    def __init__(
        self,
        message: str,
        *,
        partial: Optional[Mapping[str, int]] = None,
        failed: Iterable[str] = (),
    ) -> None:
        super().__init__(message)
        self.partial: Dict[str, int] = dict(partial or {})
        self.failed = tuple(failed)


__all__ = [
    "PortalError",
    "Unauthenticated",
    "PermissionDenied",
    "InvalidArgument",
    "QueryFailed",
    "MutationFailed",
    "WorkflowFailed",
    "InvalidTransition",
    "LookupFailed",
    "StatsFailed",
]
