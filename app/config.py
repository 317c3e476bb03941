"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is driven by environment variables."""

    # API key
    scn_api_key: str = ""

    # SSH remote configuration
    scn_ssh_port: int = 22
    scn_ssh_default_key_path: str = "/etc/scenario-control/AdminVM_id_rsa"
    scn_ssh_default_key_passphrase: str = ""
    scn_ssh_default_key_comment: str = "root@puppet"
    scn_ssh_connect_timeout_seconds: float = 15.0
    scn_ssh_keepalive_seconds: int = 10
    scn_ssh_poll_interval_seconds: float = 1.0
    scn_remote_max_workers: int = 4
    scn_remote_session_cache_size: int = 64
    scn_scripts_dir: str = Field(default="/var/lib/scenario-control/scripts")

    # DHCP service (dnsmasq)
    scn_dhcp_binary: str = "dnsmasq"
    scn_dhcp_process_name: str = "dnsmasq"
    scn_dhcp_state_dir: str = Field(default="/var/lib/scenario-control")
    scn_dhcp_conf_name: str = "dnsmasq.conf"
    scn_dhcp_hosts_name: str = "dhcpd.conf"
    scn_dhcp_interface: str = "br0"
    scn_dhcp_interface_address: str = "12.14.16.1"
    scn_dhcp_interface_netmask: str = "255.255.0.0"
    scn_dhcp_range_start: str = "12.14.16.20"
    scn_dhcp_range_end: str = "12.14.16.100"
    scn_dhcp_dns_aliases: list[str] = ["puppet"]
    scn_dhcp_ready_marker: str = "dnsmasq-dhcp: read "
    scn_dhcp_fatal_marker: str = "dnsmasq: failed to create listening socket"
    scn_dhcp_startup_timeout_seconds: float = 30.0
    scn_dhcp_stop_timeout_seconds: float = 5.0
    scn_dhcp_use_sudo: bool = True

    # Logging
    scn_log_level: str = "INFO"
    scn_log_json: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton – import this from anywhere
settings = Settings()
