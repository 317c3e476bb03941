"""Run commands and scripts on a remote VM over one SSH connection.

Output is collected by polling: both stdout and stderr are drained each
pass, then the loop sleeps a fixed interval. Neither stream can starve the
other and no select()/async machinery is needed on the channel objects.
"""

from __future__ import annotations

import shlex
import time
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional

import paramiko

from app.exceptions import ResourceFailure
from app.models.commands import AuthenticationMethod, CommandResult
from app.services.remote_session import TRANSPORT_ERRORS, RemoteSession
from app.services.failure_classifier import describe
from app.utils.logging import get_logger

log = get_logger(__name__)

_CHUNK = 1024

# Drops authorized_keys lines ending in $K (the key comment), ignoring trailing blanks
_KEEP_OTHER_KEYS = (
    r'{l = $0; sub(/[ \t\r]+$/, "", l)} '
    r'substr(l, length(l) - length(ENVIRON["K"]) + 1) != ENVIRON["K"]'
)


class RemoteExecutor:
    """Blocking command runner bound to a single ``RemoteSession``."""

    def __init__(
        self,
        session: RemoteSession,
        *,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        chunk_size: int = _CHUNK,
    ) -> None:
        self.session = session
        self.poll_interval = (
            poll_interval
            if poll_interval is not None
            else session.cfg.scn_ssh_poll_interval_seconds
        )
        self._sleep = sleep
        self._chunk = chunk_size

    # ── connection helpers ────────────────────────────────────────────

    @contextmanager
    def _connection(self) -> Iterator[paramiko.SSHClient]:
        client = self.session.connect()
        try:
            yield client
        except TRANSPORT_ERRORS as exc:
            err = self.session.classify(exc)
            log.warning(
                "remote.transport_failed",
                host=self.session.address, kind=err.kind.value, error=describe(exc),
            )
            raise err from exc
        finally:
            client.close()
            log.debug("ssh.disconnected", host=self.session.address)

    @contextmanager
    def _channel(self, client: paramiko.SSHClient) -> Iterator[paramiko.Channel]:
        transport = client.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException("SSH session not active")
        channel = transport.open_session()
        try:
            yield channel
        finally:
            channel.close()

    # ── stream capture ────────────────────────────────────────────────

    def _drain(self, channel: paramiko.Channel, out: bytearray, err: bytearray) -> None:
        while channel.recv_ready():
            data = channel.recv(self._chunk)
            if not data:
                break
            out.extend(data)
        while channel.recv_stderr_ready():
            data = channel.recv_stderr(self._chunk)
            if not data:
                break
            err.extend(data)

    @staticmethod
    def _finished(channel: paramiko.Channel) -> bool:
        # exit-status may arrive before the last output packets; only EOF or
        # close means both streams are complete
        return channel.closed or channel.eof_received

    def _feed(self, channel: paramiko.Channel, source: BinaryIO, name: str) -> None:
        while True:
            try:
                chunk = source.read(self._chunk)
            except OSError as exc:
                raise ResourceFailure(f"Could not read script {name}", exc) from exc
            if not chunk:
                break
            channel.sendall(chunk)
        channel.shutdown_write()

    def _execute(
        self,
        channel: paramiko.Channel,
        command: str,
        label: Optional[str] = None,
        stdin: Optional[BinaryIO] = None,
        stdin_name: str = "",
    ) -> CommandResult:
        out, err = bytearray(), bytearray()
        channel.exec_command(command)
        if stdin is not None:
            self._feed(channel, stdin, stdin_name)

        while True:
            self._drain(channel, out, err)
            if self._finished(channel) and not (
                channel.recv_ready() or channel.recv_stderr_ready()
            ):
                break
            self._sleep(self.poll_interval)

        return CommandResult(
            exit_status=channel.recv_exit_status(),
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
            command=label or command,
        )

    # ── public API ────────────────────────────────────────────────────

    def run_command(self, command: str, secondary: Optional[str] = None) -> CommandResult:
        """Run *command*, then optionally *secondary* on the same connection.

        The secondary command is meant for follow-ups that may no longer be
        possible after the primary ran, e.g. powering off a VM whose access
        key the primary just removed. Its output is discarded; a transport
        failure while running it is reported in ``secondary_error``.
        """
        log.info("remote.command", host=self.session.address, command=command)
        with self._connection() as client:
            with self._channel(client) as channel:
                result = self._execute(channel, command)
            if secondary is not None:
                problem = self._run_secondary(client, secondary)
                if problem is not None:
                    result = result.model_copy(update={"secondary_error": problem})
        log.info(
            "remote.command_done",
            host=self.session.address, exit_status=result.exit_status,
        )
        return result

    def _run_secondary(self, client: paramiko.SSHClient, command: str) -> Optional[str]:
        try:
            with self._channel(client) as channel:
                outcome = self._execute(channel, command)
        except TRANSPORT_ERRORS as exc:
            err = self.session.classify(exc)
            log.warning(
                "remote.secondary_failed",
                host=self.session.address, command=command,
                kind=err.kind.value, error=describe(exc),
            )
            return f"{err.kind.value}: {describe(exc)}"
        log.debug(
            "remote.secondary_done",
            host=self.session.address, exit_status=outcome.exit_status,
        )
        return None

    def run_script(self, path: str) -> CommandResult:
        """Pipe a local script into ``bash -s`` on the remote host."""
        script = Path(path)
        if not script.is_file():
            raise ResourceFailure(f"Script not found at {path}")
        try:
            source = script.open("rb")
        except OSError as exc:
            raise ResourceFailure(f"Could not open script {path}", exc) from exc

        label = f'Equivalent to: ssh {self.session.destination} "bash -s" < {path}'
        log.info("remote.script", host=self.session.address, script=str(script))
        with source:
            with self._connection() as client:
                with self._channel(client) as channel:
                    result = self._execute(
                        channel, "bash -s", label=label, stdin=source, stdin_name=path,
                    )
        log.info(
            "remote.script_done",
            host=self.session.address, exit_status=result.exit_status,
        )
        return result

    def revoke_access(self, shutdown_command: Optional[str] = None) -> CommandResult:
        """Remove this session's key from the remote authorized_keys.

        *shutdown_command* (e.g. ``/sbin/poweroff``) runs afterwards on the
        same connection, since reconnecting is no longer possible.
        """
        if self.session.auth_method not in (
            AuthenticationMethod.DEFAULT_KEY, AuthenticationMethod.CUSTOM_KEY,
        ) or not self.session.key_comment:
            raise ResourceFailure(
                f"No removable key for {self.session.destination} "
                f"({self.session.auth_method.value})",
            )
        needle = shlex.quote(" " + self.session.key_comment)
        command = (
            "f=~/.ssh/authorized_keys; "
            f"K={needle} awk '{_KEEP_OTHER_KEYS}' "
            '"$f" > "$f.tmp" && mv "$f.tmp" "$f"'
        )
        result = self.run_command(command, shutdown_command)
        if result.exit_status == 0:
            self.session.mark_destroyed()
        return result
