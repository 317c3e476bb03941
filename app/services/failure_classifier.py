"""Map free-text SSH transport errors onto the closed failure taxonomy.

paramiko (and the sockets beneath it) report most problems as plain
messages, so classification is a prioritised list of case-insensitive
substring rules. The first matching rule wins; anything unmatched is an
``UnknownTransportFailure`` that keeps the original exception as its cause.

New transport quirks are handled by adding rules, not code paths::

    register_rule("host key mismatch", FailureKind.AUTH)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.exceptions import (
    AuthFailure,
    ConnectionFailure,
    FailureKind,
    RemoteExecutionError,
    UnknownTransportFailure,
)


@dataclass(frozen=True)
class ClassificationRule:
    pattern: str
    kind: FailureKind
    priority: int = 100

    def matches(self, message: str) -> bool:
        return self.pattern.lower() in message.lower()


# Lower priority value is checked first.
_DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    # Networking
    ClassificationRule("no route to host", FailureKind.CONNECTION, 10),
    ClassificationRule("connection refused", FailureKind.CONNECTION, 10),
    ClassificationRule("connection timed out", FailureKind.CONNECTION, 10),
    ClassificationRule("connection reset", FailureKind.CONNECTION, 10),
    ClassificationRule("unable to connect", FailureKind.CONNECTION, 10),
    ClassificationRule("network is unreachable", FailureKind.CONNECTION, 10),
    ClassificationRule("timeout", FailureKind.CONNECTION, 20),
    ClassificationRule("timed out", FailureKind.CONNECTION, 20),
    ClassificationRule("session is down", FailureKind.CONNECTION, 20),
    ClassificationRule("session not active", FailureKind.CONNECTION, 20),
    ClassificationRule("end of stream", FailureKind.CONNECTION, 20),
    ClassificationRule("end of io stream read", FailureKind.CONNECTION, 20),
    ClassificationRule("error reading ssh protocol banner", FailureKind.CONNECTION, 20),
    # Authentication
    ClassificationRule("auth fail", FailureKind.AUTH, 30),
    ClassificationRule("authentication failed", FailureKind.AUTH, 30),
    ClassificationRule("ssh_msg_disconnect", FailureKind.AUTH, 30),
    ClassificationRule("no authentication methods available", FailureKind.AUTH, 30),
)

_rules: list[ClassificationRule] = list(_DEFAULT_RULES)


def register_rule(pattern: str, kind: FailureKind, priority: int = 100) -> ClassificationRule:
    """Add a rule; equal priorities keep registration order."""
    if kind not in (FailureKind.CONNECTION, FailureKind.AUTH):
        raise ValueError("transport rules may only classify as connection or auth")
    rule = ClassificationRule(pattern, kind, priority)
    _rules.append(rule)
    _rules.sort(key=lambda r: r.priority)
    return rule


def reset_rules() -> None:
    """Restore the built-in rule set."""
    _rules[:] = list(_DEFAULT_RULES)


def rules() -> tuple[ClassificationRule, ...]:
    return tuple(_rules)


def match_kind(message: str) -> FailureKind:
    for rule in _rules:
        if rule.matches(message):
            return rule.kind
    return FailureKind.UNKNOWN


def describe(exc: BaseException) -> str:
    """Best text to classify: message, falling back to the exception type."""
    text = str(exc)
    if not text:
        text = type(exc).__name__
    if isinstance(exc, EOFError):
        text = f"{text} (end of stream)"
    return text


def classify_transport_failure(
    raw_message: str,
    *,
    address: str = "",
    username: str = "",
    cause: Optional[BaseException] = None,
) -> RemoteExecutionError:
    """Return (not raise) the typed error for a transport failure message."""
    kind = match_kind(raw_message or "")
    if kind is FailureKind.CONNECTION:
        err: RemoteExecutionError = ConnectionFailure(
            f"Could not connect to: {address}", cause,
        )
    elif kind is FailureKind.AUTH:
        err = AuthFailure(f"Could not authenticate as: {username} on {address}", cause)
    else:
        err = UnknownTransportFailure(
            "Unrecognized transport exception encountered", cause,
        )
        err.set("transport_message", raw_message)
    if address:
        err.set("address", address)
    if username:
        err.set("username", username)
    return err
