"""Async facade over the DHCP supervisor and its configuration files."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

from app.config import Settings, settings
from app.models.dhcp import DhcpHost, DhcpHostsResponse, SupervisorStatus
from app.services.dhcp_config import ensure_dhcp_config, write_dhcp_config
from app.services.process_supervisor import ProcessSupervisor, build_dhcp_supervisor
from app.utils.logging import get_logger

log = get_logger(__name__)


class DhcpService:
    """Serialises start, stop and reload on one worker thread."""

    def __init__(
        self,
        cfg: Settings | None = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self.supervisor = supervisor or build_dhcp_supervisor(self._cfg)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dhcp")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def _query(self, fn):
        # Off the lifecycle worker: start() may be blocked on the ready marker
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def status(self) -> SupervisorStatus:
        return SupervisorStatus(**await self._query(self.supervisor.status))

    async def start(self) -> SupervisorStatus:
        await self._run(ensure_dhcp_config, self._cfg)
        ok = await self._run(self.supervisor.start)
        if not ok:
            log.error("dhcp.not_started")
        return await self.status()

    async def ensure(self) -> SupervisorStatus:
        """Start the server if it is not serving yet, writing config first."""
        if not await self._query(self.supervisor.is_running):
            await self._run(ensure_dhcp_config, self._cfg)
            if not await self._run(self.supervisor.ensure_running):
                log.error("dhcp.not_started")
        return await self.status()

    async def stop(self) -> SupervisorStatus:
        await self._run(self.supervisor.stop)
        return await self.status()

    async def update_hosts(self, hosts: list[DhcpHost]) -> DhcpHostsResponse:
        conf, hfile = await self._run(write_dhcp_config, hosts, self._cfg)
        reloaded = await self._run(self.supervisor.reload)
        if not reloaded and await self._query(self.supervisor.is_running):
            log.warning("dhcp.reload_failed")
        return DhcpHostsResponse(
            conf_file=str(conf),
            hosts_file=str(hfile),
            host_count=len(hosts),
            reloaded=reloaded,
        )

    def close(self) -> None:
        self.supervisor.stop()
        self._executor.shutdown(wait=False)


# ── Singleton instance ────────────────────────────────────────────────────

dhcp_service = DhcpService()
