"""Exceptions shared by the session services and the transport handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class LotoError(Exception):
    """Base error. Carries enough to build an HTTP or Socket.IO error reply."""

    code: str
    message: str
    status_code: int
    details: Any | None = None

    def to_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, 'details': self.details}


class ValidationError(LotoError):
    """Malformed input: request bodies, inbound messages, ticket layouts."""

    def __init__(self, message: str = "Validation error", details: Any | None = None) -> None:
        super().__init__(code="validation_error", message=message, status_code=400, details=details)


class RejectedError(LotoError):
    """A local action that is not allowed in the current state. Nothing changed."""

    def __init__(self, message: str = "Action rejected", code: str = "rejected", details: Any | None = None) -> None:
        super().__init__(code=code, message=message, status_code=409, details=details)


class SessionMismatchError(LotoError):
    """A peer asked for a session code this host does not serve."""

    def __init__(self, message: str = "Session not found", details: Any | None = None) -> None:
        super().__init__(code="session_not_found", message=message, status_code=404, details=details)
