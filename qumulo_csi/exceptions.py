"""Exceptions raised by the Qumulo CSI controller.

Every exception carries a ``code`` (a :class:`grpc.StatusCode`) that the
hosting gRPC server reports to the orchestrator.
"""

from typing import Any, Dict, List, Optional, Union

import grpc


class QumuloCSIException(Exception):
    """Base exception for Qumulo CSI errors."""

    code = grpc.StatusCode.INTERNAL

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidArgument(QumuloCSIException):
    """Request is malformed or names something unsupported."""

    code = grpc.StatusCode.INVALID_ARGUMENT


class InvalidVolumeId(InvalidArgument):
    """Volume ID token could not be decoded."""

    pass


class Unauthenticated(QumuloCSIException):
    """Authentication against the cluster failed."""

    code = grpc.StatusCode.UNAUTHENTICATED


class CredentialsMissing(Unauthenticated):
    """Username or password secret was not supplied."""

    pass


class LoginFailed(Unauthenticated):
    """Cluster rejected the login request."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class FailedPrecondition(QumuloCSIException):
    """Cluster is not in a state that allows the operation."""

    code = grpc.StatusCode.FAILED_PRECONDITION


class NotFound(QumuloCSIException):
    """Target path, export or entry does not exist."""

    code = grpc.StatusCode.NOT_FOUND


class AlreadyExists(QumuloCSIException):
    """Target exists in a state incompatible with the request."""

    code = grpc.StatusCode.ALREADY_EXISTS


class Internal(QumuloCSIException):
    """Unclassified failure."""

    code = grpc.StatusCode.INTERNAL


class Unimplemented(QumuloCSIException):
    """Lifecycle operation not supported by this driver."""

    code = grpc.StatusCode.UNIMPLEMENTED


class ApiError(QumuloCSIException):
    """HTTP request to the cluster failed below the REST layer."""

    pass


class ApiTimeout(ApiError):
    """HTTP request to the cluster timed out."""

    code = grpc.StatusCode.DEADLINE_EXCEEDED


class ApiConnectionError(ApiError):
    """Failed to connect to the cluster REST API."""

    code = grpc.StatusCode.UNAVAILABLE


class RestError(QumuloCSIException):
    """Cluster answered with a non-2xx status.

    The body of a Qumulo error response is decoded into ``error_class``,
    ``description``, ``module``, ``stack`` and ``user_visible``.
    """

    def __init__(
        self,
        status_code: int,
        error_class: str = "",
        description: str = "",
        module: str = "",
        stack: Optional[List[str]] = None,
        user_visible: bool = False,
    ):
        self.status_code = status_code
        self.error_class = error_class
        self.description = description
        self.module = module
        self.stack = list(stack or [])
        self.user_visible = user_visible
        super().__init__(
            f"{status_code} {description} {module} {error_class} {self.stack}"
        )

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "RestError":
        """Build from a decoded error body (anything but a dict is ignored)."""
        if not isinstance(body, dict):
            body = {}
        return cls(
            status_code,
            error_class=body.get("error_class") or "",
            description=body.get("description") or "",
            module=body.get("module") or "",
            stack=body.get("stack") or [],
            user_visible=bool(body.get("user_visible", False)),
        )

    def matches(self, status_code: int, error_class: Optional[str] = None) -> bool:
        if self.status_code != status_code:
            return False
        return error_class is None or self.error_class == error_class


TransformKey = Union[int, tuple]


def transform_rest_error(
    err: Exception, transforms: Dict[TransformKey, Exception]
) -> Exception:
    """Map an appliance error onto the exception a call site expects.

    ``transforms`` is keyed by status code or by a ``(status_code,
    error_class)`` pair; pairs are consulted before bare status codes. A
    ``RestError`` that nothing matches becomes :class:`Internal`. Other
    exceptions are returned as they are.
    """
    if not isinstance(err, RestError):
        return err

    for key, mapped in transforms.items():
        if isinstance(key, tuple) and err.matches(*key):
            return mapped

    for key, mapped in transforms.items():
        if not isinstance(key, tuple) and err.matches(key):
            return mapped

    return Internal(f"Unhandled Error: {err}")
