"""
Fleet inventory: the hosts to deploy to and their per-host settings.

The inventory is a YAML document with a `defaults` mapping and a `hosts` list.
Every host entry is deep-merged over the defaults, so a host only lists what
differs::

    defaults:
      ssh_user: root
      install:
        behind_proxy: true
      reverse_proxy:
        enabled: true
        certbot_email: ops@example.com
    hosts:
      - name: kc1.example.com
        install:
          domain: auth1.example.com
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kcdeploy.core.config import Settings
from kcdeploy.core.parameters import FederationParameters, InstallationParameters, ReverseProxyParameters
from kcdeploy.utils.yaml_util import deep_merge, load_yaml_from_path, load_yaml_from_string

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Exception raised when the inventory cannot be loaded or validated."""


class HostEntry(BaseModel):
    """A single host after the defaults have been applied."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    ssh_user: str | None = None
    ssh_options: list[str] = Field(default_factory=list)
    become: bool = False
    install: InstallationParameters
    reverse_proxy: ReverseProxyParameters = Field(default_factory=ReverseProxyParameters)
    federation: FederationParameters | None = None


class Inventory(BaseModel):
    model_config = ConfigDict(frozen=True)

    hosts: list[HostEntry]

    def select(self, names: list[str] | None) -> list[HostEntry]:
        """
        Return the hosts with the given names, or all hosts when names is empty.

        Raises:
            InventoryError: If a name is not in the inventory
        """
        if not names:
            return list(self.hosts)
        by_name = {host.name: host for host in self.hosts}
        unknown = [name for name in names if name not in by_name]
        if unknown:
            raise InventoryError(f"Unknown hosts: {', '.join(unknown)}")
        return [by_name[name] for name in names]


def _resolve_host(raw_host: dict[str, Any], defaults: dict[str, Any], settings: Settings) -> HostEntry:
    merged = deep_merge(defaults, raw_host)
    install_values = merged.pop("install", None) or {}
    # Flag defaults come from Settings, like the single host installer
    merged["install"] = InstallationParameters.from_settings(settings, **install_values)
    return HostEntry(**merged)


def parse_inventory(data: dict[str, Any], settings: Settings) -> Inventory:
    """
    Build an Inventory from the parsed YAML document.

    Raises:
        InventoryError: If the document is malformed
    """
    defaults = data.get("defaults") or {}
    raw_hosts = data.get("hosts") or []

    if not isinstance(defaults, dict):
        raise InventoryError("'defaults' must be a mapping")
    if not isinstance(raw_hosts, list) or not raw_hosts:
        raise InventoryError("'hosts' must be a non-empty list")

    hosts = []
    for index, raw_host in enumerate(raw_hosts):
        if isinstance(raw_host, str):
            raw_host = {"name": raw_host}
        if not isinstance(raw_host, dict) or "name" not in raw_host:
            raise InventoryError(f"Host entry {index} must be a mapping with a 'name'")
        try:
            hosts.append(_resolve_host(raw_host, defaults, settings))
        except (ValidationError, ValueError) as e:
            raise InventoryError(f"Invalid settings for host '{raw_host['name']}': {e}") from e

    names = [host.name for host in hosts]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise InventoryError(f"Duplicate hosts in inventory: {', '.join(duplicates)}")

    logger.debug(f"Inventory contains {len(hosts)} hosts: {names}")
    return Inventory(hosts=hosts)


def load_inventory(path: str, settings: Settings) -> Inventory:
    try:
        data = load_yaml_from_path(path)
    except (FileNotFoundError, ValueError) as e:
        raise InventoryError(str(e)) from e
    return parse_inventory(data, settings)


def load_inventory_from_string(content: str, settings: Settings) -> Inventory:
    return parse_inventory(load_yaml_from_string(content), settings)
