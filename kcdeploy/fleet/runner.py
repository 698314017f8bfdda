"""
Fleet runner: replays the single host installation on many hosts over SSH.

Hosts are processed concurrently, at most `forks` at a time. A failure on one
host is recorded in its HostResult and does not stop the others.
"""

import asyncio
import logging
import shlex
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from kcdeploy.bootstrap.ldap_federation import LdapFederationSetup
from kcdeploy.connectors.host import Host, SSHHost
from kcdeploy.connectors.keycloak import KeycloakConnector
from kcdeploy.core.config import Settings
from kcdeploy.core.parameters import FederationParameters, InstallationPaths
from kcdeploy.fleet.inventory import HostEntry
from kcdeploy.generation.renderer import ConfigRenderer
from kcdeploy.manager.installation_manager import EnvironmentCheckError, InstallationManager
from kcdeploy.manager.reverse_proxy_manager import ReverseProxyManager
from kcdeploy.utils.env_file import parse_env_content

logger = logging.getLogger(__name__)

HostFactory = Callable[[HostEntry], Host]
ConnectorFactory = Callable[[str, str, str, FederationParameters], KeycloakConnector]


class FederationConfigError(Exception):
    """Exception raised when the admin API cannot be reached with the configured values."""


@dataclass
class HostResult:
    host: str
    success: bool
    summary: str
    error: str | None = None


class Fleet:
    """Runs deployment and federation tasks across the hosts of an inventory."""

    def __init__(
        self,
        hosts: Sequence[HostEntry],
        settings: Settings,
        forks: int | None = None,
        host_factory: HostFactory | None = None,
        connector_factory: ConnectorFactory | None = None,
    ):
        self.hosts = list(hosts)
        self.settings = settings
        self.forks = forks or settings.FLEET_FORKS
        if self.forks < 1:
            raise ValueError(f"forks must be at least 1, got {self.forks}")
        self._host_factory = host_factory or self._ssh_host
        self._connector_factory = connector_factory or self._keycloak_connector

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} with {len(self.hosts)} hosts, forks={self.forks}>"

    def _ssh_host(self, entry: HostEntry) -> Host:
        options = [*shlex.split(self.settings.SSH_OPTIONS), *entry.ssh_options]
        return SSHHost(
            entry.name,
            user=entry.ssh_user,
            options=options,
            command_timeout=self.settings.SSH_TIMEOUT,
            become=entry.become,
        )

    def _keycloak_connector(
        self, url: str, admin_user: str, admin_password: str, params: FederationParameters
    ) -> KeycloakConnector:
        return KeycloakConnector(
            url,
            admin_username=admin_user,
            admin_password=admin_password,
            admin_realm=params.admin_realm,
            timeout=self.settings.KEYCLOAK_HTTP_TIMEOUT,
            verify=self.settings.KEYCLOAK_VERIFY_TLS,
        )

    async def _run_all(self, task: Callable[[HostEntry], Awaitable[str]], description: str) -> list[HostResult]:
        semaphore = asyncio.Semaphore(self.forks)

        async def run_one(entry: HostEntry) -> HostResult:
            async with semaphore:
                logger.info(f"[{entry.name}] Starting {description}")
                try:
                    summary = await task(entry)
                except Exception as e:
                    logger.error(f"[{entry.name}] {description} failed: {type(e).__name__}: {e}")
                    return HostResult(entry.name, False, f"{description} failed", f"{type(e).__name__}: {e}")
                logger.info(f"[{entry.name}] {description} finished: {summary}")
                return HostResult(entry.name, True, summary)

        return list(await asyncio.gather(*(run_one(entry) for entry in self.hosts)))

    async def deploy(self, federate: bool = False) -> list[HostResult]:
        """
        Install Keycloak on every host, then the reverse proxy where enabled.

        Args:
            federate: Also configure LDAP federation on hosts that define it
        """
        return await self._run_all(lambda entry: self.deploy_host(entry, federate), "deploy")

    async def federate(self) -> list[HostResult]:
        """Configure LDAP federation on every host that defines it."""
        return await self._run_all(self.federate_host, "federation")

    async def deploy_host(self, entry: HostEntry, federate: bool = False) -> str:
        """
        Install Keycloak and the optional reverse proxy on one host.

        Raises:
            EnvironmentCheckError: If commands on the host do not run as root
        """
        host = self._host_factory(entry)
        if not await host.is_root():
            raise EnvironmentCheckError(
                f"[{entry.name}] Commands do not run as root; log in as root or set 'become: true'"
            )

        manager = InstallationManager(host, self.settings, entry.install)
        result = await manager.install()
        parts = ["already installed" if result.already_installed else f"installed {result.keycloak_url}"]

        proxy = ReverseProxyManager(host, ConfigRenderer(self.settings), entry.install, entry.reverse_proxy)
        if await proxy.configure():
            parts.append(f"proxy {proxy.server_name}")

        if federate and entry.federation is not None:
            parts.append(await self._federate(host, entry))
        return ", ".join(parts)

    async def federate_host(self, entry: HostEntry) -> str:
        if entry.federation is None:
            return "no federation configured"
        return await self._federate(self._host_factory(entry), entry)

    async def _federate(self, host: Host, entry: HostEntry) -> str:
        params = entry.federation
        url = params.keycloak_url or entry.install.keycloak_url
        admin_user, admin_password = await self.resolve_admin_credentials(host, params)

        keycloak = self._connector_factory(url, admin_user, admin_password, params)
        report = await LdapFederationSetup(keycloak, params, self.settings).setup_all()

        state = "created" if report.provider_created else "existing"
        return f"realm {report.realm}, {state} provider {report.provider_id}"

    async def resolve_admin_credentials(self, host: Host, params: FederationParameters) -> tuple[str, str]:
        """
        Return the admin credentials for the federation, falling back to the host's env file.

        Raises:
            FederationConfigError: If no password is configured and none is found on the host
        """
        if params.admin_user and params.admin_password:
            return params.admin_user, params.admin_password

        env_file = InstallationPaths.from_settings(self.settings).env_file
        content = await host.read_text(env_file)
        env_values = parse_env_content(content) if content else {}

        admin_user = params.admin_user or env_values.get("KEYCLOAK_ADMIN")
        admin_password = params.admin_password or env_values.get("KEYCLOAK_ADMIN_PASSWORD")
        if not admin_user or not admin_password:
            raise FederationConfigError(f"[{host.name}] No admin credentials configured and none found in {env_file}")
        logger.debug(f"[{host.name}] Using admin credentials from {env_file}")
        return admin_user, admin_password


def format_results(results: Sequence[HostResult]) -> str:
    """Render the per-host results as a plain text table."""
    width = max([len(result.host) for result in results] + [4])
    lines = [f"{'HOST':<{width}}  STATUS  DETAILS"]
    for result in results:
        status = "ok" if result.success else "FAILED"
        details = result.summary if result.success else result.error
        lines.append(f"{result.host:<{width}}  {status:<6}  {details}")
    return "\n".join(lines)
