"""Error taxonomy for control-plane store operations.

Every component decides control flow from the class of a store error,
never from its message:

- NOT_FOUND: benign on read and delete, triggers create on write
- ALREADY_EXISTS: benign, another actor created the object first
- CONFLICT: stale resourceVersion, never retried with the same object
- FORBIDDEN: policy or lifecycle rejection (e.g. terminating namespace)
- OTHER: transient or unknown, retried up to the fixed budget
"""

from __future__ import annotations

import json
from enum import Enum

from kubernetes.client.exceptions import ApiException


class ErrorClass(str, Enum):
    """Classification of a store error."""

    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    CONFLICT = "Conflict"
    FORBIDDEN = "Forbidden"
    OTHER = "Other"


class StoreError(Exception):
    """Base class for errors raised by a ResourceStore."""

    error_class = ErrorClass.OTHER

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """Raised when the addressed object does not exist."""

    error_class = ErrorClass.NOT_FOUND


class AlreadyExistsError(StoreError):
    """Raised when creating an object whose name is taken."""

    error_class = ErrorClass.ALREADY_EXISTS


class ConflictError(StoreError):
    """Raised when an update carries a stale resourceVersion."""

    error_class = ErrorClass.CONFLICT


class ForbiddenError(StoreError):
    """Raised when the control plane rejects the request by policy."""

    error_class = ErrorClass.FORBIDDEN


class TransientStoreError(StoreError):
    """Raised for unavailable or otherwise failing store calls."""

    error_class = ErrorClass.OTHER


class NamespaceProvisioningError(Exception):
    """Raised when the tenant namespace cannot be read or created."""

    pass


class ReconciliationAborted(Exception):
    """Raised when an error policy stops a keyed-list reconciliation."""

    pass


def _status_reason(exc: ApiException) -> str:
    """Extract the Status.reason from an API error body, if any."""
    if not exc.body:
        return ""
    try:
        body = json.loads(exc.body)
    except (TypeError, ValueError):
        return ""
    if not isinstance(body, dict):
        return ""
    return str(body.get("reason") or "")


def classify(exc: BaseException) -> ErrorClass:
    """Classify a store error.

    Accepts our own StoreError hierarchy as well as raw ApiException
    values coming straight out of the Kubernetes client.

    Args:
        exc: The error to classify.

    Returns:
        The ErrorClass; OTHER for anything unrecognized.
    """
    if isinstance(exc, StoreError):
        return exc.error_class

    if isinstance(exc, ApiException):
        match exc.status:
            case 404:
                return ErrorClass.NOT_FOUND
            case 403:
                return ErrorClass.FORBIDDEN
            case 409:
                if _status_reason(exc) == "AlreadyExists":
                    return ErrorClass.ALREADY_EXISTS
                return ErrorClass.CONFLICT
            case _:
                return ErrorClass.OTHER

    return ErrorClass.OTHER


_ERROR_TYPES: dict[ErrorClass, type[StoreError]] = {
    ErrorClass.NOT_FOUND: NotFoundError,
    ErrorClass.ALREADY_EXISTS: AlreadyExistsError,
    ErrorClass.CONFLICT: ConflictError,
    ErrorClass.FORBIDDEN: ForbiddenError,
    ErrorClass.OTHER: TransientStoreError,
}


def from_api_exception(exc: ApiException, *, creating: bool = False) -> StoreError:
    """Translate a Kubernetes ApiException into a StoreError.

    A 409 on create without a parseable Status body is an AlreadyExists;
    anywhere else it is a version conflict.
    """
    error_class = classify(exc)
    if creating and exc.status == 409:
        error_class = ErrorClass.ALREADY_EXISTS
    message = f"{exc.status} {exc.reason}: {_status_message(exc)}".rstrip(": ")
    return _ERROR_TYPES[error_class](message, status=exc.status)


def _status_message(exc: ApiException) -> str:
    if not exc.body:
        return ""
    try:
        body = json.loads(exc.body)
    except (TypeError, ValueError):
        return str(exc.body)
    if isinstance(body, dict):
        return str(body.get("message") or "")
    return ""


def from_transport_error(exc: Exception) -> TransientStoreError:
    """Translate a connection-level failure (no HTTP status) into a StoreError."""
    return TransientStoreError(f"API server unreachable: {exc}")
