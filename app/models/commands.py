"""Command-related data structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, SecretStr, model_validator


class AuthenticationMethod(str, Enum):
    """How a remote session authenticates; only ever moves forward."""

    DEFAULT_KEY = "default_key"
    CUSTOM_KEY = "custom_key"
    PASSWORD = "password"
    NOT_CONFIGURED = "not_configured"
    DESTROYED = "destroyed"


class Credential(BaseModel):
    """Exactly one way of proving identity to a remote host."""

    model_config = {"frozen": True}

    method: AuthenticationMethod
    key_file: Optional[str] = None
    passphrase: Optional[SecretStr] = None
    key_comment: str = ""
    password: Optional[SecretStr] = None

    @model_validator(mode="after")
    def _one_mode(self) -> "Credential":
        if self.method in (AuthenticationMethod.DEFAULT_KEY, AuthenticationMethod.CUSTOM_KEY):
            if not self.key_file or self.password is not None:
                raise ValueError(f"{self.method.value} credential needs a key file and no password")
        elif self.method is AuthenticationMethod.PASSWORD:
            if self.password is None or self.key_file:
                raise ValueError("password credential needs a password and no key file")
        else:
            raise ValueError(f"{self.method.value} is not a credential mode")
        return self


class CommandResult(BaseModel):
    """Captured outcome of one remote command or script run.

    ``command`` is a description for logs and reports, not something to
    re-execute. ``exit_status`` stays -1 when the remote side never reported one.
    """

    model_config = {"frozen": True}

    exit_status: int = -1
    stdout: str = ""
    stderr: str = ""
    command: str = ""
    secondary_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0

    def __str__(self) -> str:
        return (
            f"Command: {self.command}\nExit: {self.exit_status}\n"
            f"Output Stream: {self.stdout}\nError Stream: {self.stderr}"
        )
