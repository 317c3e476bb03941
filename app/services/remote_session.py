"""Authenticated SSH connection descriptor for one remote host.

A ``RemoteSession`` does not hold a live connection. It knows how to open
one (``connect()``) and is reused for every command sent to the same VM.
Credentials are fixed at construction; only the authentication method can
later move to ``DESTROYED`` once access has been revoked on the remote side.
"""

from __future__ import annotations

from typing import Callable, Optional

import paramiko

from app.config import Settings, settings
from app.exceptions import AuthFailure, RemoteExecutionError, ResourceFailure
from app.models.commands import AuthenticationMethod, Credential
from app.services.failure_classifier import classify_transport_failure, describe
from app.utils.logging import get_logger

log = get_logger(__name__)

# Everything paramiko or the socket layer may raise while talking to a host
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    paramiko.SSHException,
    OSError,
    EOFError,
)

_KEY_TYPES: tuple[type[paramiko.PKey], ...] = (
    paramiko.RSAKey,
    paramiko.ECDSAKey,
    paramiko.Ed25519Key,
)


class RemoteUserInfo:
    """Supplies the password for password / keyboard-interactive auth."""

    def __init__(self, password: str) -> None:
        self._password = password

    def __call__(self) -> str:
        return self._password

    def __repr__(self) -> str:
        return "RemoteUserInfo(password='**********')"


def load_private_key(path: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Load an RSA, ECDSA or Ed25519 private key from *path*."""
    last_exc: Optional[BaseException] = None
    for key_cls in _KEY_TYPES:
        try:
            return key_cls.from_private_key_file(path, password=passphrase or None)
        except OSError as exc:
            raise ResourceFailure(f"Could not read the private key {path}", exc) from exc
        except paramiko.SSHException as exc:
            last_exc = exc
    raise ResourceFailure(f"Could not load the private key {path}", last_exc)


class RemoteSession:
    """One remote target: address, user and a single authentication mode."""

    def __init__(
        self,
        username: str,
        address: str,
        credential: Credential,
        *,
        cfg: Settings | None = None,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
        pkey: Optional[paramiko.PKey] = None,
    ) -> None:
        self._cfg = cfg or settings
        self.username = username
        self.address = address
        self.port = self._cfg.scn_ssh_port
        self._credential = credential
        self._client_factory = client_factory
        self._auth_method = AuthenticationMethod.NOT_CONFIGURED
        self._user_info: Optional[RemoteUserInfo] = None
        self._pkey: Optional[paramiko.PKey] = None

        if credential.method is AuthenticationMethod.PASSWORD:
            self._user_info = RemoteUserInfo(credential.password.get_secret_value())
        else:
            passphrase = (
                credential.passphrase.get_secret_value() if credential.passphrase else None
            )
            self._pkey = pkey or load_private_key(credential.key_file, passphrase)
        self._auth_method = credential.method

    # ── constructors ──────────────────────────────────────────────────

    @classmethod
    def with_default_key(
        cls, username: str, address: str, *, cfg: Settings | None = None, **kwargs,
    ) -> "RemoteSession":
        """Authenticate with the AdminVM key configured for the service."""
        cfg = cfg or settings
        credential = Credential(
            method=AuthenticationMethod.DEFAULT_KEY,
            key_file=cfg.scn_ssh_default_key_path,
            passphrase=cfg.scn_ssh_default_key_passphrase or None,
            key_comment=cfg.scn_ssh_default_key_comment,
        )
        return cls(username, address, credential, cfg=cfg, **kwargs)

    @classmethod
    def with_key(
        cls,
        username: str,
        address: str,
        key_file: str,
        passphrase: Optional[str] = None,
        comment: str = "",
        **kwargs,
    ) -> "RemoteSession":
        credential = Credential(
            method=AuthenticationMethod.CUSTOM_KEY,
            key_file=key_file,
            passphrase=passphrase,
            key_comment=comment,
        )
        return cls(username, address, credential, **kwargs)

    @classmethod
    def with_password(
        cls, username: str, address: str, password: str, **kwargs,
    ) -> "RemoteSession":
        credential = Credential(method=AuthenticationMethod.PASSWORD, password=password)
        return cls(username, address, credential, **kwargs)

    # ── state ─────────────────────────────────────────────────────────

    @property
    def cfg(self) -> Settings:
        return self._cfg

    @property
    def auth_method(self) -> AuthenticationMethod:
        return self._auth_method

    @property
    def key_comment(self) -> str:
        """Comment of the authorized key, empty for password sessions."""
        if self._auth_method in (AuthenticationMethod.DEFAULT_KEY, AuthenticationMethod.CUSTOM_KEY):
            return self._credential.key_comment
        return ""

    @property
    def destination(self) -> str:
        return f"{self.username}@{self.address}"

    def mark_destroyed(self) -> None:
        log.info("ssh.access_destroyed", host=self.address, user=self.username)
        self._auth_method = AuthenticationMethod.DESTROYED

    def classify(self, exc: BaseException) -> RemoteExecutionError:
        return classify_transport_failure(
            describe(exc), address=self.address, username=self.username, cause=exc,
        )

    # ── connection ────────────────────────────────────────────────────

    def connect(self) -> paramiko.SSHClient:
        """Open an authenticated connection; the caller must ``close()`` it."""
        if self._auth_method is AuthenticationMethod.DESTROYED:
            raise AuthFailure(
                f"Remote access for {self.username} on {self.address} was destroyed",
            )

        client = self._client_factory()
        # Setup network VMs are re-created constantly; host keys are not verified
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        kwargs: dict = dict(
            hostname=self.address,
            port=self.port,
            username=self.username,
            timeout=self._cfg.scn_ssh_connect_timeout_seconds,
            banner_timeout=self._cfg.scn_ssh_connect_timeout_seconds,
            auth_timeout=self._cfg.scn_ssh_connect_timeout_seconds,
            allow_agent=False,
            look_for_keys=False,
        )
        if self._user_info is not None:
            kwargs["password"] = self._user_info()
        else:
            kwargs["pkey"] = self._pkey

        log.info(
            "ssh.connecting",
            host=self.address, user=self.username, auth=self._auth_method.value,
        )
        try:
            client.connect(**kwargs)
            transport = client.get_transport()
            if transport is not None:
                transport.set_keepalive(self._cfg.scn_ssh_keepalive_seconds)
        except TRANSPORT_ERRORS as exc:
            client.close()
            err = self.classify(exc)
            log.warning(
                "ssh.connect_failed",
                host=self.address, kind=err.kind.value, error=describe(exc),
            )
            raise err from exc
        log.info("ssh.connected", host=self.address)
        return client

    def __repr__(self) -> str:
        return f"RemoteSession({self.destination}, {self._auth_method.value})"
