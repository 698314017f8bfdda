"""
Docker engine checks and installation on a host.
"""

import logging
import shlex

from kcdeploy.connectors.host import Host
from kcdeploy.connectors.systemd import SystemctlConnector

logger = logging.getLogger(__name__)

DOCKER_UNIT = "docker"


class DockerConnector:
    """Connector for the Docker engine on a host."""

    def __init__(self, host: Host, systemctl: SystemctlConnector | None = None):
        self.host = host
        self.systemctl = systemctl or SystemctlConnector(host)

    async def is_installed(self) -> bool:
        return await self.host.command_exists("docker")

    async def is_running(self) -> bool:
        return await self.systemctl.is_active(DOCKER_UNIT)

    async def install(self, install_url: str) -> None:
        """
        Install Docker with the upstream convenience script and start the daemon.

        Args:
            install_url: URL of the bootstrap script (https://get.docker.com)
        """
        logger.info(f"[{self.host.name}] Installing Docker from {install_url}")
        await self.host.run(["sh", "-c", f"curl -fsSL {shlex.quote(install_url)} | sh"])
        await self.systemctl.enable(DOCKER_UNIT)
        await self.systemctl.start(DOCKER_UNIT)
        logger.info(f"[{self.host.name}] Docker installed successfully")

    async def container_health(self, container: str) -> str | None:
        """Return the health status docker reports for a container, or None if unknown."""
        result = await self.host.run(
            ["docker", "inspect", "--format", "{{.State.Health.Status}}", container], check=False
        )
        if not result.ok:
            return None
        return result.stdout or None
