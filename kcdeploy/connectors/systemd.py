"""
systemctl wrapper used to manage the docker daemon and the Keycloak unit.
"""

import logging

from kcdeploy.connectors.host import Host

logger = logging.getLogger(__name__)


class SystemctlConnector:
    """Connector for the systemd service manager on a host."""

    def __init__(self, host: Host):
        self.host = host

    async def daemon_reload(self) -> None:
        await self.host.run(["systemctl", "daemon-reload"])

    async def enable(self, unit: str) -> None:
        logger.debug(f"[{self.host.name}] Enabling {unit}")
        await self.host.run(["systemctl", "enable", unit])

    async def start(self, unit: str) -> None:
        logger.debug(f"[{self.host.name}] Starting {unit}")
        await self.host.run(["systemctl", "start", unit])

    async def reload(self, unit: str) -> None:
        await self.host.run(["systemctl", "reload", unit])

    async def is_active(self, unit: str) -> bool:
        result = await self.host.run(["systemctl", "is-active", "--quiet", unit], check=False)
        return result.ok

    async def status(self, unit: str) -> str:
        """Return the `systemctl status` output; the exit code is not meaningful here."""
        result = await self.host.run(["systemctl", "status", "--no-pager", unit], check=False)
        return result.stdout or result.stderr
