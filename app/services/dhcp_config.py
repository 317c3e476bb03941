"""dnsmasq configuration for the scenario setup network.

Every VM gets a static lease (``dhcp-hostsfile``) and a DNS record, and the
aliases in ``scn_dhcp_dns_aliases`` (the config-management master by
default) resolve to the AdminVM's setup interface.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable

from app.config import Settings, settings
from app.models.dhcp import DhcpHost
from app.utils.logging import get_logger

log = get_logger(__name__)


def conf_path(cfg: Settings | None = None) -> Path:
    cfg = cfg or settings
    return Path(cfg.scn_dhcp_state_dir) / cfg.scn_dhcp_conf_name


def hosts_path(cfg: Settings | None = None) -> Path:
    cfg = cfg or settings
    return Path(cfg.scn_dhcp_state_dir) / cfg.scn_dhcp_hosts_name


def render_dnsmasq_conf(hosts: Iterable[DhcpHost], cfg: Settings | None = None) -> str:
    cfg = cfg or settings
    addr = cfg.scn_dhcp_interface_address
    lines = [
        f"interface={cfg.scn_dhcp_interface}",
        f"listen-address={addr}",
        f"dhcp-hostsfile={hosts_path(cfg)}",
        f"dhcp-range={cfg.scn_dhcp_range_start},{cfg.scn_dhcp_range_end}",
        # VMs must not claim names; DNS records come from this file only
        "dhcp-ignore-names",
        "bind-dynamic",
        "log-dhcp",
        "leasefile-ro",
        f"dhcp-option=option:router,{addr}",
        f"dhcp-option=option:dns-server,{addr}",
    ]
    lines += [f"address=/{alias}/{addr}" for alias in cfg.scn_dhcp_dns_aliases]
    lines += [f"host-record={h.label},{h.ip}" for h in hosts]
    return "\n".join(lines) + "\n"


def render_hosts_file(hosts: Iterable[DhcpHost]) -> str:
    return "".join(f"{h.mac},set:{h.label},{h.ip}\n" for h in hosts)


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_dhcp_config(hosts: list[DhcpHost], cfg: Settings | None = None) -> tuple[Path, Path]:
    """Write dnsmasq.conf and the static lease file; returns both paths."""
    cfg = cfg or settings
    labels = [h.label for h in hosts]
    dupes = {label for label in labels if labels.count(label) > 1}
    if dupes:
        raise ValueError(f"duplicate host labels: {', '.join(sorted(dupes))}")

    conf, hfile = conf_path(cfg), hosts_path(cfg)
    _atomic_write(hfile, render_hosts_file(hosts))
    _atomic_write(conf, render_dnsmasq_conf(hosts, cfg))
    log.info("dhcp.config_written", conf=str(conf), hosts=len(hosts))
    return conf, hfile


def ensure_dhcp_config(cfg: Settings | None = None) -> bool:
    """Create empty config files if none exist yet; True if written."""
    cfg = cfg or settings
    if conf_path(cfg).exists() and hosts_path(cfg).exists():
        return False
    write_dhcp_config([], cfg)
    return True
