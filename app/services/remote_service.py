"""Async facade over the blocking remote executor.

paramiko calls run in a bounded thread pool so the FastAPI event loop is
never blocked. Sessions are cached per target and credential in a bounded
LRU. Revoked keys are remembered apart from the cache, so a VM whose key was
removed stays ``DESTROYED`` for later requests even after eviction.
"""

from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from app.config import Settings, settings
from app.exceptions import ResourceFailure
from app.models.commands import AuthenticationMethod, CommandResult, Credential
from app.models.remote import RemoteTarget
from app.services.remote_executor import RemoteExecutor
from app.services.remote_session import RemoteSession
from app.utils.logging import get_logger

log = get_logger(__name__)

SessionFactory = Callable[[str, str, Optional[Credential]], RemoteSession]


class RemoteService:
    def __init__(
        self,
        cfg: Settings | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self._session_factory = session_factory or self._default_session
        self._sessions: OrderedDict[tuple, RemoteSession] = OrderedDict()
        # (user, address, key comment) of keys already removed from a VM
        self._revoked: set[tuple[str, str, str]] = set()
        self._sessions_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self._cfg.scn_remote_max_workers, thread_name_prefix="remote",
        )

    # ── helpers ───────────────────────────────────────────────────────

    def _default_session(
        self, username: str, address: str, credential: Optional[Credential],
    ) -> RemoteSession:
        if credential is None:
            return RemoteSession.with_default_key(username, address, cfg=self._cfg)
        return RemoteSession(username, address, credential, cfg=self._cfg)

    def session_for(self, target: RemoteTarget) -> RemoteSession:
        """Cached session for *target*; least recently used ones are evicted.

        Revocations outlive eviction: a fresh session for a key that was
        already removed from the VM starts out ``DESTROYED``.
        """
        credential = target.credential()
        key = (target.username, target.address, target.auth, credential)
        with self._sessions_lock:
            session = self._sessions.get(key)
            if session is not None:
                self._sessions.move_to_end(key)
                return session
            session = self._session_factory(target.username, target.address, credential)
            if self._revoked_key(session) in self._revoked:
                session.mark_destroyed()
            self._sessions[key] = session
            while len(self._sessions) > max(1, self._cfg.scn_remote_session_cache_size):
                _, evicted = self._sessions.popitem(last=False)
                log.debug("remote.session_evicted", session=repr(evicted))
            return session

    @staticmethod
    def _revoked_key(session: RemoteSession) -> tuple[str, str, str]:
        return (session.username, session.address, session.key_comment)

    def resolve_script(self, name: str) -> Path:
        """Map a script name onto SCN_SCRIPTS_DIR, refusing anything outside it."""
        base = Path(self._cfg.scn_scripts_dir).resolve()
        path = (base / name).resolve()
        if base != path and base not in path.parents:
            raise ResourceFailure(f"Script {name!r} is outside the scripts directory")
        return path

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    # ── public ────────────────────────────────────────────────────────

    async def run_command(
        self, target: RemoteTarget, command: str, secondary: Optional[str] = None,
    ) -> CommandResult:
        executor = RemoteExecutor(await self._run(self.session_for, target))
        return await self._run(executor.run_command, command, secondary)

    async def run_script(self, target: RemoteTarget, script: str) -> CommandResult:
        path = self.resolve_script(script)
        executor = RemoteExecutor(await self._run(self.session_for, target))
        return await self._run(executor.run_script, str(path))

    async def revoke_access(
        self, target: RemoteTarget, shutdown_command: Optional[str] = None,
    ) -> CommandResult:
        session = await self._run(self.session_for, target)
        revoked_key = self._revoked_key(session)
        result = await self._run(RemoteExecutor(session).revoke_access, shutdown_command)
        if session.auth_method is AuthenticationMethod.DESTROYED:
            with self._sessions_lock:
                self._revoked.add(revoked_key)
        return result

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


# ── Singleton instance ────────────────────────────────────────────────────

remote_service = RemoteService()
