"""Mock remote service and supervisor for API tests without SSH or dnsmasq."""

from __future__ import annotations

from typing import Optional

from app.exceptions import RemoteExecutionError
from app.models.commands import CommandResult
from app.models.remote import RemoteTarget
from app.services.process_supervisor import SupervisorState

# ── Canned outputs ────────────────────────────────────────────────────────

PUPPET_PHASE_OUTPUT = """\
Info: Using configured environment 'phase1'
Info: Retrieving pluginfacts
Info: Applying configuration version '1402425876'
Notice: Applied catalog in 4.21 seconds
"""

_CANNED: dict[str, CommandResult] = {
    "echo hello": CommandResult(exit_status=0, stdout="hello\n", command="echo hello"),
    "ntpdate": CommandResult(exit_status=0, stdout="", command="ntpdate -v -d 12.14.16.1"),
    "/opt/puppetlabs/bin/puppet agent": CommandResult(
        exit_status=2, stdout=PUPPET_PHASE_OUTPUT, command="puppet agent",
    ),
    "false": CommandResult(exit_status=1, command="false"),
}


class MockRemoteService:
    """Drop-in replacement for RemoteService using canned outputs."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.error: Optional[RemoteExecutionError] = None

    def _lookup(self, command: str) -> CommandResult:
        for key, result in _CANNED.items():
            if command.startswith(key):
                return result
        return CommandResult(exit_status=0, command=command)

    async def run_command(
        self, target: RemoteTarget, command: str, secondary: Optional[str] = None,
    ) -> CommandResult:
        self.calls.append(("command", target.address, command, secondary))
        if self.error is not None:
            raise self.error
        return self._lookup(command)

    async def run_script(self, target: RemoteTarget, script: str) -> CommandResult:
        self.calls.append(("script", target.address, script))
        if self.error is not None:
            raise self.error
        return CommandResult(
            exit_status=0,
            stdout="configured\n",
            command=f'Equivalent to: ssh {target.username}@{target.address} "bash -s" < {script}',
        )

    async def revoke_access(
        self, target: RemoteTarget, shutdown_command: Optional[str] = None,
    ) -> CommandResult:
        self.calls.append(("revoke", target.address, shutdown_command))
        if self.error is not None:
            raise self.error
        return CommandResult(exit_status=0, command="revoke")

    def close(self) -> None:
        pass


class MockSupervisor:
    """ProcessSupervisor look-alike that never launches anything."""

    name = "dhcp"

    def __init__(self, start_result: bool = True) -> None:
        self.start_result = start_result
        self.launches = 0
        self.reloads = 0
        self._attempted = False
        self._ready = False
        self._state = SupervisorState.NOT_STARTED

    def start(self) -> bool:
        if self._attempted:
            return self._ready
        self._attempted = True
        self.launches += 1
        self._ready = self.start_result
        self._state = SupervisorState.READY if self._ready else SupervisorState.FAILED
        return self._ready

    def stop(self) -> None:
        self._attempted = False
        self._ready = False
        if self._state is not SupervisorState.NOT_STARTED:
            self._state = SupervisorState.STOPPED

    def is_running(self) -> bool:
        return self._ready

    def ensure_running(self) -> bool:
        if not self._ready:
            return self.start()
        return True

    def reload(self) -> bool:
        if not self._ready:
            return False
        self.reloads += 1
        return True

    def status(self) -> dict:
        return {
            "service": self.name,
            "state": self._state.value,
            "running": self._ready,
            "ready": self._ready,
            "pid": 4242 if self._ready else None,
            "exit_code": None,
            "attempted": self._attempted,
        }
