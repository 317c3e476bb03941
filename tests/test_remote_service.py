"""Tests for the async RemoteService facade."""

from __future__ import annotations

from pathlib import Path

import pytest

from app.exceptions import AuthFailure, ConnectionFailure, ResourceFailure
from app.models.commands import AuthenticationMethod
from app.models.remote import RemoteTarget
from app.services.remote_service import RemoteService
from app.services.remote_session import RemoteSession


@pytest.fixture
def service(test_settings, ssh_server):
    created: list[tuple] = []

    def factory(username, address, credential):
        created.append((username, address, credential))
        if credential is None:
            return RemoteSession.with_key(
                username, address, "/unused/id_rsa", comment="root@puppet",
                cfg=test_settings, client_factory=ssh_server.client_factory, pkey=object(),
            )
        return RemoteSession(
            username, address, credential,
            cfg=test_settings, client_factory=ssh_server.client_factory,
        )

    svc = RemoteService(cfg=test_settings, session_factory=factory)
    svc.created = created
    yield svc
    svc.close()


def test_sessions_are_cached_per_credential(service):
    a = RemoteTarget(address="12.14.16.20")
    b = RemoteTarget(address="12.14.16.20")
    c = RemoteTarget(address="12.14.16.20", auth="password", password="0ccpadmin")
    d = RemoteTarget(address="12.14.16.21")

    assert service.session_for(a) is service.session_for(b)
    assert service.session_for(c) is not service.session_for(a)
    assert service.session_for(d) is not service.session_for(a)
    assert len(service.created) == 3


def test_resolve_script(service, test_settings):
    path = service.resolve_script("phase1.sh")
    assert path == (Path(test_settings.scn_scripts_dir) / "phase1.sh").resolve()
    with pytest.raises(ResourceFailure, match="outside"):
        service.resolve_script("../../etc/shadow")
    with pytest.raises(ResourceFailure):
        service.resolve_script("/etc/passwd")


def test_target_validation():
    with pytest.raises(ValueError):
        RemoteTarget(address="12.14.16.20", auth="password")
    with pytest.raises(ValueError):
        RemoteTarget(address="12.14.16.20", auth="custom_key")
    with pytest.raises(ValueError):
        RemoteTarget(address="12.14.16.20", auth="destroyed")
    assert RemoteTarget(address="12.14.16.20").credential() is None


@pytest.mark.asyncio
async def test_run_command(service, ssh_server):
    ssh_server.add("hostname", stdout=[b"webserver\n"])
    result = await service.run_command(RemoteTarget(address="12.14.16.20"), "hostname")
    assert result.exit_status == 0
    assert result.stdout == "webserver\n"
    assert ssh_server.disconnects == 1


@pytest.mark.asyncio
async def test_run_command_connection_failure(service, ssh_server):
    ssh_server.connect_error = OSError("No route to host")
    with pytest.raises(ConnectionFailure) as info:
        await service.run_command(RemoteTarget(address="12.14.16.99"), "hostname")
    assert info.value.retryable is True


@pytest.mark.asyncio
async def test_run_script(service, ssh_server, test_settings, tmp_path):
    script = tmp_path / "scripts" / "phase1.sh"
    script.write_bytes(b"#!/bin/bash\necho configured\n")
    ssh_server.add("bash -s", stdout=[b"configured\n"])

    result = await service.run_script(RemoteTarget(address="12.14.16.20"), "phase1.sh")
    assert result.stdout == "configured\n"
    assert result.command.startswith('Equivalent to: ssh root@12.14.16.20 "bash -s" < ')
    assert bytes(ssh_server.channels[0].stdin) == script.read_bytes()


@pytest.mark.asyncio
async def test_run_missing_script(service, ssh_server):
    with pytest.raises(ResourceFailure, match="Script not found"):
        await service.run_script(RemoteTarget(address="12.14.16.20"), "nope.sh")
    assert ssh_server.connects == []


@pytest.mark.asyncio
async def test_revoke_then_reuse_is_refused(service, ssh_server):
    target = RemoteTarget(address="12.14.16.20")
    result = await service.revoke_access(target, "/sbin/poweroff")
    assert result.exit_status == 0
    assert ("exec", "/sbin/poweroff") in ssh_server.events
    assert service.session_for(target).auth_method is AuthenticationMethod.DESTROYED

    with pytest.raises(AuthFailure, match="destroyed"):
        await service.run_command(target, "hostname")
    assert len(ssh_server.connects) == 1


@pytest.fixture
def small_service(test_settings, ssh_server):
    cfg = test_settings.model_copy(update={"scn_remote_session_cache_size": 2})

    def factory(username, address, credential):
        if credential is None:
            return RemoteSession.with_key(
                username, address, "/unused/id_rsa", comment="root@puppet",
                cfg=cfg, client_factory=ssh_server.client_factory, pkey=object(),
            )
        return RemoteSession(
            username, address, credential, cfg=cfg, client_factory=ssh_server.client_factory,
        )

    svc = RemoteService(cfg=cfg, session_factory=factory)
    yield svc
    svc.close()


def test_session_cache_is_bounded(small_service):
    wrong_passwords = [
        RemoteTarget(address="12.14.16.20", auth="password", password=f"guess{i}")
        for i in range(10)
    ]
    for target in wrong_passwords:
        small_service.session_for(target)
    assert len(small_service._sessions) == 2

    first = small_service.session_for(RemoteTarget(address="12.14.16.30"))
    small_service.session_for(RemoteTarget(address="12.14.16.31"))
    # Recently used entries survive
    assert small_service.session_for(RemoteTarget(address="12.14.16.30")) is first
    small_service.session_for(RemoteTarget(address="12.14.16.32"))
    assert small_service.session_for(RemoteTarget(address="12.14.16.30")) is first


@pytest.mark.asyncio
async def test_revocation_survives_eviction(small_service, ssh_server):
    target = RemoteTarget(address="12.14.16.20")
    await small_service.revoke_access(target)
    revoked = small_service.session_for(target)
    assert revoked.auth_method is AuthenticationMethod.DESTROYED

    for i in range(3):
        small_service.session_for(RemoteTarget(address=f"12.14.16.{40 + i}"))
    fresh = small_service.session_for(target)
    assert fresh is not revoked
    assert fresh.auth_method is AuthenticationMethod.DESTROYED

    with pytest.raises(AuthFailure, match="destroyed"):
        await small_service.run_command(target, "hostname")
    assert len(ssh_server.connects) == 1
    # Other VMs are unaffected
    other = small_service.session_for(RemoteTarget(address="12.14.16.41"))
    assert other.auth_method is AuthenticationMethod.CUSTOM_KEY
