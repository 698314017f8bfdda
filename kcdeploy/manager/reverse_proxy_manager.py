"""Reverse proxy manager for putting nginx with a Let's Encrypt certificate in front of Keycloak."""

import logging
from pathlib import PurePosixPath

from kcdeploy.connectors.host import Host
from kcdeploy.connectors.systemd import SystemctlConnector
from kcdeploy.core.parameters import InstallationParameters, ReverseProxyParameters
from kcdeploy.generation.renderer import ConfigRenderer

logger = logging.getLogger(__name__)

PROXY_PACKAGES = ("nginx", "certbot", "python3-certbot-nginx")
NGINX_UNIT = "nginx"


class ReverseProxyManager:
    """Manager for the nginx virtual host and certbot certificate on a host."""

    def __init__(
        self, host: Host, renderer: ConfigRenderer, params: InstallationParameters, proxy: ReverseProxyParameters
    ) -> None:
        self.host = host
        self.renderer = renderer
        self.params = params
        self.proxy = proxy
        self.systemctl = SystemctlConnector(host)

    @property
    def server_name(self) -> str:
        return self.proxy.server_name or self.params.domain

    @property
    def site_file(self) -> PurePosixPath:
        return PurePosixPath(self.proxy.sites_available_dir) / self.proxy.site_name

    @property
    def site_link(self) -> PurePosixPath:
        return PurePosixPath(self.proxy.sites_enabled_dir) / self.proxy.site_name

    @property
    def certificate_dir(self) -> PurePosixPath:
        return PurePosixPath(self.proxy.letsencrypt_live_dir) / self.server_name

    async def configure(self) -> bool:
        """
        Install nginx and certbot, publish the virtual host and request a certificate.

        Every step checks the host first, so a rerun on a configured host changes
        nothing. Once certbot holds a certificate for the server name it owns the
        site file, which is then left as it is.

        Returns:
            True if the proxy is enabled, False if it is disabled

        Raises:
            HostCommandError: If a package install, nginx validation or certbot fails
        """
        if not self.proxy.enabled:
            logger.debug(f"[{self.host.name}] Reverse proxy disabled, skipping")
            return False

        await self.install_packages()

        if await self.has_certificate():
            logger.info(f"[{self.host.name}] Certificate for {self.server_name} exists, leaving the nginx site as is")
            return True

        if await self.write_site():
            await self.validate_and_reload()

        if self.proxy.request_certificate:
            await self.request_certificate()
        else:
            logger.info(f"[{self.host.name}] Certificate request disabled for {self.server_name}")

        logger.info(f"[{self.host.name}] Reverse proxy configured for {self.server_name}")
        return True

    async def install_packages(self) -> None:
        if await self.host.command_exists("nginx") and await self.host.command_exists("certbot"):
            logger.debug(f"[{self.host.name}] nginx and certbot already installed")
            return

        logger.info(f"[{self.host.name}] Installing {', '.join(PROXY_PACKAGES)}")
        await self.host.run(["apt-get", "update"])
        await self.host.run(
            ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", *PROXY_PACKAGES]
        )

    async def has_certificate(self) -> bool:
        return await self.host.exists(self.certificate_dir)

    async def write_site(self) -> bool:
        """
        Write and enable the virtual host.

        Returns:
            True if the site file or its link changed
        """
        content = self.renderer.render_nginx_site(self.params, self.proxy)
        changed = False

        if await self.host.read_text(self.site_file) != content:
            await self.host.write_text(self.site_file, content, mode=0o644)
            changed = True
        if not await self.host.exists(self.site_link):
            await self.host.symlink(self.site_file, self.site_link)
            changed = True

        if changed:
            logger.info(f"[{self.host.name}] Enabled nginx site {self.site_link}")
        else:
            logger.debug(f"[{self.host.name}] nginx site {self.site_link} is up to date")
        return changed

    async def validate_and_reload(self) -> None:
        await self.host.run(["nginx", "-t"])
        await self.systemctl.reload(NGINX_UNIT)

    async def request_certificate(self) -> None:
        """
        Request a certificate with certbot's nginx plugin, which also rewrites the site for HTTPS.

        Raises:
            ValueError: If no certbot e-mail address is configured
        """
        if not self.proxy.certbot_email:
            raise ValueError(f"[{self.host.name}] certbot_email is required to request a certificate")

        args = [
            "certbot",
            "--nginx",
            "-d",
            self.server_name,
            "--non-interactive",
            "--agree-tos",
            "-m",
            self.proxy.certbot_email,
            "--redirect",
        ]
        if self.proxy.certbot_staging:
            args.append("--staging")

        logger.info(f"[{self.host.name}] Requesting certificate for {self.server_name}")
        await self.host.run(args)
