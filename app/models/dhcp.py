"""DHCP (setup network) data structures."""

from __future__ import annotations

import re
from ipaddress import IPv4Address
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_MAC_RE = re.compile(r"^[0-9a-f]{2}(:[0-9a-f]{2}){5}$")
_LABEL_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class DhcpHost(BaseModel):
    """A static lease on the setup network."""

    label: str
    mac: str
    ip: IPv4Address

    @field_validator("label")
    @classmethod
    def _label(cls, v: str) -> str:
        if not _LABEL_RE.match(v):
            raise ValueError(f"invalid host label {v!r}")
        return v

    @field_validator("mac")
    @classmethod
    def _mac(cls, v: str) -> str:
        norm = v.strip().lower().replace("-", ":")
        if not _MAC_RE.match(norm):
            raise ValueError(f"invalid MAC address {v!r}")
        return norm


class DhcpHostsRequest(BaseModel):
    hosts: list[DhcpHost] = Field(default_factory=list)


class DhcpHostsResponse(BaseModel):
    conf_file: str
    hosts_file: str
    host_count: int
    reloaded: bool


class SupervisorStatus(BaseModel):
    service: str
    state: str
    running: bool
    ready: bool
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    attempted: bool = False
