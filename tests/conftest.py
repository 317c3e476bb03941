"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Force settings to use test-safe defaults before any import
os.environ.setdefault("SCN_API_KEY", "")
os.environ.setdefault("SCN_DHCP_USE_SUDO", "false")
os.environ.setdefault("SCN_SSH_POLL_INTERVAL_SECONDS", "0.01")

import pytest
from httpx import ASGITransport, AsyncClient

from app.models.commands import AuthenticationMethod
from app.services.remote_session import RemoteSession
from tests.fake_ssh import FakeSSHServer
from tests.mock_services import MockRemoteService, MockSupervisor


@pytest.fixture
def ssh_server():
    """Fresh fake SSH server with no canned commands."""
    return FakeSSHServer()


@pytest.fixture
def password_session(ssh_server):
    return RemoteSession.with_password(
        "root", "12.14.16.20", "0ccpadmin", client_factory=ssh_server.client_factory,
    )


@pytest.fixture
def key_session(ssh_server):
    """Custom-key session; the key object is never parsed by the fake."""
    session = RemoteSession.with_key(
        "root", "12.14.16.21", "/unused/id_rsa",
        comment="root@puppet",
        client_factory=ssh_server.client_factory,
        pkey=object(),
    )
    assert session.auth_method is AuthenticationMethod.CUSTOM_KEY
    return session


@pytest.fixture
def test_settings(tmp_path):
    from app.config import Settings

    scripts = tmp_path / "scripts"
    scripts.mkdir()
    return Settings(
        scn_dhcp_state_dir=str(tmp_path / "state"),
        scn_scripts_dir=str(scripts),
        scn_ssh_poll_interval_seconds=0.0,
        scn_dhcp_use_sudo=False,
    )


@pytest.fixture
def mock_remote():
    return MockRemoteService()


@pytest.fixture
def mock_supervisor():
    return MockSupervisor()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(mock_remote, mock_supervisor, test_settings):
    """Async test client with the remote and DHCP services replaced."""
    from app.services.dhcp_service import DhcpService

    dhcp = DhcpService(cfg=test_settings, supervisor=mock_supervisor)

    # Patch the singletons the routers imported
    import app.routers.dhcp as rd
    import app.routers.health as rh
    import app.routers.remote as rr

    original = (rr.remote_service, rd.dhcp_service, rh.dhcp_service)
    rr.remote_service = mock_remote
    rd.dhcp_service = dhcp
    rh.dhcp_service = dhcp

    from app.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Restore
    rr.remote_service, rd.dhcp_service, rh.dhcp_service = original
    dhcp.close()
