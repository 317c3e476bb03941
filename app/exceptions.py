"""Error taxonomy for remote configuration and supervision failures.

Callers (provisioning control loops) branch on ``retryable``: a
``TransientFailure`` may succeed if tried again later, a ``PermanentFailure``
needs an operator to fix credentials, files or the target first.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class FailureKind(str, Enum):
    CONNECTION = "connection"
    AUTH = "auth"
    UNKNOWN = "unknown"
    RESOURCE = "resource"


class ScenarioError(Exception):
    """Base error carrying an optional cause and free-form diagnostic data."""

    kind: FailureKind = FailureKind.UNKNOWN
    retryable: bool = False

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message or (str(cause) if cause else ""))
        self.message = message or (str(cause) if cause else "")
        self.data: dict[str, Any] = {}
        if cause is not None:
            self.__cause__ = cause

    def set(self, key: str, value: Any) -> "ScenarioError":
        self.data[key] = value
        return self

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def __str__(self) -> str:
        parts = [self.message]
        last = self.message
        exc = self.__cause__
        while exc is not None:
            text = str(exc)
            # Hide messages already shown further up the chain
            if text and text not in last:
                parts.append(f"Caused by: {text}")
                last = text
            exc = exc.__cause__
        if self.data:
            parts.append("Data:")
            parts.extend(f"\t{k}=[{v}]" for k, v in self.data.items())
        return "\n".join(parts)


class RemoteExecutionError(ScenarioError):
    """Failure while configuring a VM over its remote shell."""


class TransientFailure(RemoteExecutionError):
    retryable = True


class PermanentFailure(RemoteExecutionError):
    retryable = False


class ConnectionFailure(TransientFailure):
    """Network level problem: refused, unreachable, timed out, dropped."""

    kind = FailureKind.CONNECTION


class AuthFailure(PermanentFailure):
    """Credentials were rejected or remote access was revoked."""

    kind = FailureKind.AUTH


class UnknownTransportFailure(PermanentFailure):
    """Unrecognised transport error; the original is kept as ``__cause__``."""

    kind = FailureKind.UNKNOWN


class ResourceFailure(PermanentFailure):
    """Local resource problem: missing script, unreadable key, stream I/O."""

    kind = FailureKind.RESOURCE
