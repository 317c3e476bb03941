"""Scenario Control API – remote execution and DHCP supervision service."""

__version__ = "0.3.0"
