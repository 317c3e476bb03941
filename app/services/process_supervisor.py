"""Start, watch and stop a long-lived network service (dnsmasq).

``ProcessSupervisor`` launches the daemon in the foreground, reads its
stderr until a *ready* or *fatal* marker shows up, and hands the stream to a
``Watchdog`` thread that keeps draining it for as long as the process lives.

Start failures are reported as ``False`` plus log output, never raised: the
provisioning loop above simply asks again later.
"""

from __future__ import annotations

import subprocess
import threading
from enum import Enum
from pathlib import Path
from typing import IO, Callable, Optional, Sequence

from app.config import Settings, settings
from app.utils.logging import get_logger

log = get_logger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]
PopenFactory = Callable[..., subprocess.Popen]


class SupervisorState(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    STOPPED = "stopped"
    FAILED = "failed"


class Watchdog(threading.Thread):
    """Drains the supervised process' stderr until it ends, then reaps it."""

    def __init__(
        self,
        supervisor: "ProcessSupervisor",
        process: subprocess.Popen,
        stream: IO[str],
        exit_grace: float = 2.0,
    ) -> None:
        super().__init__(name=f"{supervisor.name}-watchdog", daemon=True)
        self._supervisor = supervisor
        self._process = process
        self._stream = stream
        self._exit_grace = exit_grace

    def run(self) -> None:
        exit_code: Optional[int] = None
        try:
            for line in self._stream:
                log.debug("supervisor.output", service=self._supervisor.name, line=line.rstrip())
        except ValueError:
            # Stream closed underneath us by stop(); expected
            pass
        except OSError as exc:
            log.warning("supervisor.watch_failed", service=self._supervisor.name, error=str(exc))
        finally:
            exit_code = self._reap()
            log.debug("supervisor.watchdog_exit", service=self._supervisor.name, exit_code=exit_code)
            self._supervisor._on_exit(self, exit_code)

    def _reap(self) -> Optional[int]:
        try:
            return self._process.wait(timeout=self._exit_grace)
        except subprocess.TimeoutExpired:
            pass
        self._process.kill()
        try:
            return self._process.wait(timeout=self._exit_grace)
        except subprocess.TimeoutExpired:
            return None


class ProcessSupervisor:
    """Own one instance of an external daemon and its watchdog.

    All state shared with the watchdog (process handle, readiness, exit code)
    is guarded by ``_lock``. Joining the watchdog always happens outside the
    lock so a watchdog reporting an exit can never deadlock against ``stop()``.
    """

    def __init__(
        self,
        name: str,
        command: Sequence[str],
        ready_marker: str,
        fatal_marker: str,
        *,
        process_name: Optional[str] = None,
        interface_command: Optional[Sequence[str]] = None,
        privilege_prefix: Sequence[str] = (),
        startup_timeout: Optional[float] = None,
        stop_timeout: float = 5.0,
        runner: Runner = subprocess.run,
        popen: PopenFactory = subprocess.Popen,
    ) -> None:
        self.name = name
        self.process_name = process_name or name
        self.command = list(command)
        self.ready_marker = ready_marker
        self.fatal_marker = fatal_marker
        self.interface_command = list(interface_command) if interface_command else None
        self.privilege_prefix = list(privilege_prefix)
        self.startup_timeout = startup_timeout
        self.stop_timeout = stop_timeout
        self._runner = runner
        self._popen = popen

        self._lock = threading.RLock()
        self._start_lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._watchdog: Optional[Watchdog] = None
        self._ready = False
        self._attempted = False
        self._exit_code: Optional[int] = None
        self._state = SupervisorState.NOT_STARTED

    # ── helpers ───────────────────────────────────────────────────────

    def _external(self, *args: str, check_name: str) -> Optional[int]:
        """Run a short helper command; failures are logged, never raised."""
        cmd = self.privilege_prefix + list(args)
        try:
            proc = self._runner(cmd, capture_output=True, text=True, timeout=30)
        except (OSError, subprocess.SubprocessError) as exc:
            log.warning(f"supervisor.{check_name}_failed", service=self.name, error=str(exc))
            return None
        if proc.returncode != 0:
            log.debug(
                f"supervisor.{check_name}_rc",
                service=self.name, rc=proc.returncode, err=(proc.stderr or "")[:200],
            )
        return proc.returncode

    def _signal(self, signame: str) -> Optional[int]:
        return self._external("pkill", f"-{signame}", "-x", self.process_name, check_name="signal")

    def _raise_interface(self) -> None:
        if not self.interface_command:
            return
        rc = self._external(*self.interface_command, check_name="interface")
        if rc not in (None, 0):
            log.error("supervisor.interface_failed", service=self.name, rc=rc)

    # ── lifecycle ─────────────────────────────────────────────────────

    def start(self) -> bool:
        """Launch the daemon and wait for its ready marker.

        Only one attempt is made per lifetime; later calls return the first
        result until ``stop()`` (or a crash of a ready process) clears it.
        """
        with self._start_lock:
            with self._lock:
                if self._attempted:
                    return self._ready

            self._raise_interface()
            # A previous run of this program may have left one behind
            self.stop()

            cmd = self.privilege_prefix + self.command
            with self._lock:
                self._attempted = True
                self._state = SupervisorState.STARTING
                self._exit_code = None
                log.info("supervisor.starting", service=self.name, cmd=cmd)
                try:
                    process = self._popen(
                        cmd,
                        stdin=None,
                        stdout=None,
                        stderr=subprocess.PIPE,
                        text=True,
                        bufsize=1,
                    )
                except OSError as exc:
                    log.error("supervisor.launch_failed", service=self.name, error=str(exc))
                    self._state = SupervisorState.FAILED
                    return False
                self._process = process

            # Readiness is awaited without holding _lock so stop() can interrupt it
            ready = self._await_ready(process)

            with self._lock:
                if self._process is not process:
                    log.warning("supervisor.start_interrupted", service=self.name)
                    return False
                if ready:
                    self._ready = True
                    self._state = SupervisorState.READY
                    self._watchdog = Watchdog(self, process, process.stderr)
                    self._watchdog.start()
                    log.info("supervisor.ready", service=self.name, pid=process.pid)
                    return True

                log.error("supervisor.start_failed", service=self.name)
                self._state = SupervisorState.FAILED
                self._discard(process)
                return False

    def _await_ready(self, process: subprocess.Popen) -> bool:
        timer: Optional[threading.Timer] = None
        if self.startup_timeout:
            timer = threading.Timer(self.startup_timeout, self._startup_expired, args=(process,))
            timer.daemon = True
            timer.start()
        try:
            while True:
                line = process.stderr.readline()
                if not line:
                    log.warning("supervisor.stream_ended", service=self.name)
                    return False
                log.debug("supervisor.output", service=self.name, line=line.rstrip())
                if line.startswith(self.ready_marker):
                    return True
                if line.startswith(self.fatal_marker):
                    log.error("supervisor.fatal_marker", service=self.name, line=line.rstrip())
                    return False
        except (OSError, ValueError) as exc:
            log.error("supervisor.read_failed", service=self.name, error=str(exc))
            return False
        finally:
            if timer is not None:
                timer.cancel()

    def _startup_expired(self, process: subprocess.Popen) -> None:
        log.error("supervisor.startup_timeout", service=self.name, timeout=self.startup_timeout)
        process.kill()

    def _discard(self, process: subprocess.Popen) -> None:
        if process.poll() is None:
            process.kill()
        try:
            self._exit_code = process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            log.warning("supervisor.discard_timeout", service=self.name, pid=process.pid)
        if process.stderr is not None:
            process.stderr.close()
        self._process = None

    def _on_exit(self, watchdog: Watchdog, exit_code: Optional[int]) -> None:
        with self._lock:
            if watchdog is not self._watchdog:
                return
            self._exit_code = exit_code
            self._ready = False
            self._process = None
            self._watchdog = None
            if self._state is SupervisorState.READY:
                # Crashed while serving; let the next start() try again
                log.error("supervisor.exited", service=self.name, exit_code=exit_code)
                self._state = SupervisorState.FAILED
                self._attempted = False

    def stop(self) -> None:
        """Terminate the daemon, including instances this object did not start."""
        log.debug("supervisor.stopping", service=self.name)
        self._signal("TERM")

        with self._lock:
            process, watchdog = self._process, self._watchdog
            self._process = None
            self._watchdog = None
            self._ready = False
            self._attempted = False
            if self._state is not SupervisorState.NOT_STARTED:
                self._state = SupervisorState.STOPPED

        if process is None:
            return
        if process.poll() is None:
            process.kill()
        if watchdog is not None and watchdog is not threading.current_thread():
            watchdog.join(self.stop_timeout)
            if watchdog.is_alive():
                log.warning("supervisor.watchdog_join_timeout", service=self.name, timeout=self.stop_timeout)
                return
        with self._lock:
            self._exit_code = process.poll()
        if process.stderr is not None:
            process.stderr.close()
        log.info("supervisor.stopped", service=self.name, exit_code=self._exit_code)

    def reload(self) -> bool:
        """Ask the daemon to re-read its host files (SIGHUP)."""
        if not self.is_running():
            return False
        return self._signal("HUP") == 0

    # ── queries ───────────────────────────────────────────────────────

    def is_running(self) -> bool:
        with self._lock:
            if self._process is None or not self._ready:
                return False
            code = self._process.poll()
            if code is not None:
                self._exit_code = code
                return False
            return True

    def ensure_running(self) -> bool:
        """Start the daemon if it never became ready; report readiness.

        A fresh start reports the ready marker result directly rather than
        probing a process that may still be initialising.
        """
        with self._lock:
            needs_start = self._process is None or not self._ready
        if needs_start:
            return self.start()
        return self.is_running()

    @property
    def state(self) -> SupervisorState:
        return self._state

    def status(self) -> dict:
        with self._lock:
            return {
                "service": self.name,
                "state": self._state.value,
                "running": self.is_running(),
                "ready": self._ready,
                "pid": self._process.pid if self._process is not None else None,
                "exit_code": self._exit_code,
                "attempted": self._attempted,
            }


def build_dhcp_supervisor(cfg: Settings | None = None, **kwargs) -> ProcessSupervisor:
    """Supervisor for the setup network's dnsmasq instance."""
    cfg = cfg or settings
    conf = Path(cfg.scn_dhcp_state_dir) / cfg.scn_dhcp_conf_name
    return ProcessSupervisor(
        name="dhcp",
        process_name=cfg.scn_dhcp_process_name,
        command=[cfg.scn_dhcp_binary, "--no-daemon", f"--conf-file={conf}"],
        ready_marker=cfg.scn_dhcp_ready_marker,
        fatal_marker=cfg.scn_dhcp_fatal_marker,
        interface_command=[
            "ifconfig", cfg.scn_dhcp_interface,
            cfg.scn_dhcp_interface_address,
            "netmask", cfg.scn_dhcp_interface_netmask, "up",
        ],
        privilege_prefix=["sudo"] if cfg.scn_dhcp_use_sudo else [],
        startup_timeout=cfg.scn_dhcp_startup_timeout_seconds or None,
        stop_timeout=cfg.scn_dhcp_stop_timeout_seconds,
        **kwargs,
    )
