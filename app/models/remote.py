"""Request models for the remote execution endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, SecretStr, model_validator

from app.models.commands import AuthenticationMethod, Credential


class RemoteTarget(BaseModel):
    """Which VM to talk to and how to authenticate."""

    address: str
    username: str = "root"
    auth: AuthenticationMethod = AuthenticationMethod.DEFAULT_KEY
    password: Optional[SecretStr] = None
    key_file: Optional[str] = None
    passphrase: Optional[SecretStr] = None
    key_comment: str = ""

    @model_validator(mode="after")
    def _auth_fields(self) -> "RemoteTarget":
        if self.auth is AuthenticationMethod.PASSWORD and self.password is None:
            raise ValueError("password auth needs a password")
        if self.auth is AuthenticationMethod.CUSTOM_KEY and not self.key_file:
            raise ValueError("custom_key auth needs key_file")
        if self.auth in (AuthenticationMethod.NOT_CONFIGURED, AuthenticationMethod.DESTROYED):
            raise ValueError(f"{self.auth.value} is not a usable auth mode")
        return self

    def credential(self) -> Optional[Credential]:
        """Explicit credential, or None for the service's default key."""
        if self.auth is AuthenticationMethod.PASSWORD:
            return Credential(method=self.auth, password=self.password)
        if self.auth is AuthenticationMethod.CUSTOM_KEY:
            return Credential(
                method=self.auth,
                key_file=self.key_file,
                passphrase=self.passphrase,
                key_comment=self.key_comment,
            )
        return None


class CommandRequest(BaseModel):
    target: RemoteTarget
    command: str = Field(min_length=1)
    secondary_command: Optional[str] = None


class ScriptRequest(BaseModel):
    target: RemoteTarget
    script: str = Field(min_length=1, description="Path relative to SCN_SCRIPTS_DIR")


class RevokeRequest(BaseModel):
    target: RemoteTarget
    shutdown_command: Optional[str] = None
