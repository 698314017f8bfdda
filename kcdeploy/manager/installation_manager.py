"""Installation manager for provisioning Keycloak with PostgreSQL on a single host."""

import logging
from dataclasses import dataclass, field

from kcdeploy.connectors.docker import DockerConnector
from kcdeploy.connectors.host import Host
from kcdeploy.connectors.systemd import SystemctlConnector
from kcdeploy.core.config import Settings
from kcdeploy.core.parameters import GeneratedSecrets, InstallationParameters, InstallationPaths
from kcdeploy.core.readiness import wait_until_ready
from kcdeploy.generation.renderer import ConfigRenderer
from kcdeploy.utils.env_file import parse_env_content
from kcdeploy.utils.passwords import generate_secret, generate_secure_password

logger = logging.getLogger(__name__)

SECRET_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644
DIRECTORY_MODE = 0o755
SCRATCH_DIRECTORY_MODE = 0o777


class EnvironmentCheckError(Exception):
    """Exception raised when the host does not meet the installation prerequisites."""


@dataclass
class InstallationResult:
    host: str
    already_installed: bool
    keycloak_url: str | None
    report: str
    secrets: GeneratedSecrets | None = None
    env_values: dict[str, str] = field(default_factory=dict)


class InstallationManager:
    """Manager that installs Keycloak as a docker compose stack under systemd."""

    def __init__(self, host: Host, settings: Settings, params: InstallationParameters) -> None:
        """
        Initialize the InstallationManager.

        Args:
            host: Host the installation is performed on
            settings: Tool settings (paths, images, readiness tuning)
            params: Resolved installation parameters
        """
        self.host = host
        self.settings = settings
        self.params = params
        self.paths = InstallationPaths.from_settings(settings)
        self.systemctl = SystemctlConnector(host)
        self.docker = DockerConnector(host, self.systemctl)
        self.renderer = ConfigRenderer(settings)

    async def is_installed(self) -> bool:
        return await self.host.exists(self.paths.compose_file)

    async def install(self) -> InstallationResult:
        """
        Install Keycloak unless the installation marker is already present.

        Steps of a fresh installation:
        1. Install Docker if it is missing (unless skip_docker is set)
        2. Check that the Docker daemon is active
        3. Create the directory layout
        4. Generate secrets
        5. Write the environment file, compose file and systemd unit
        6. Enable and start the unit
        7. Wait for the unit and the Keycloak container to become ready
        8. Write the info report

        Returns:
            InstallationResult describing what was done

        Raises:
            EnvironmentCheckError: If Docker is unavailable
            HostCommandError: If any command on the host fails
            ReadinessTimeoutError: If Keycloak does not become ready in time
        """
        if await self.is_installed():
            logger.info(f"[{self.host.name}] Keycloak is already installed ({self.paths.compose_file} exists)")
            return await self.report_status()

        logger.info(f"[{self.host.name}] Installing Keycloak for {self.params.domain}")

        await self.ensure_docker()
        await self.create_directories()
        secrets = self.generate_secrets()
        await self.write_configuration(secrets)
        await self.start_service()
        await self.wait_for_ready()

        await self.host.write_text(
            self.paths.info_file,
            self.renderer.render_info_file(self.params, self.paths, secrets),
            mode=SECRET_FILE_MODE,
        )
        logger.info(f"[{self.host.name}] Installation info saved to {self.paths.info_file}")

        summary = self.renderer.render_summary(self.params, self.paths, secrets)
        logger.info(summary)

        return InstallationResult(
            host=self.host.name,
            already_installed=False,
            keycloak_url=self.params.keycloak_url,
            report=summary,
            secrets=secrets,
        )

    async def report_status(self) -> InstallationResult:
        """Describe an existing installation without changing anything on the host."""
        content = await self.host.read_text(self.paths.env_file)
        env_values = parse_env_content(content) if content else {}
        if not env_values:
            logger.warning(f"[{self.host.name}] No readable environment file at {self.paths.env_file}")

        service_active = await self.systemctl.is_active(self.paths.unit_name)
        container_health = await self.docker.container_health(self.settings.KEYCLOAK_CONTAINER_NAME)

        report = self.renderer.render_status(self.paths, env_values, service_active, container_health)
        logger.info(report)

        return InstallationResult(
            host=self.host.name,
            already_installed=True,
            keycloak_url=env_values.get("KEYCLOAK_URL"),
            report=report,
            env_values=env_values,
        )

    async def ensure_docker(self) -> None:
        """
        Make sure the Docker daemon is installed and running.

        Raises:
            EnvironmentCheckError: If Docker is missing and skipped, or not active
        """
        installed = await self.docker.is_installed()
        if not installed:
            if self.params.skip_docker:
                raise EnvironmentCheckError(
                    f"[{self.host.name}] Docker is not installed and installation was skipped (--skip-docker)"
                )
            await self.docker.install(self.settings.DOCKER_INSTALL_URL)
        else:
            logger.info(f"[{self.host.name}] Docker is already installed")

        if not await self.docker.is_running():
            raise EnvironmentCheckError(f"[{self.host.name}] Docker is not running")

    async def create_directories(self) -> None:
        logger.info(f"[{self.host.name}] Creating directory structure in {self.paths.install_dir}")
        await self.host.make_dirs(self.paths.install_dir, DIRECTORY_MODE)
        await self.host.make_dirs(self.paths.data_dir, DIRECTORY_MODE)
        for subdir in self.paths.data_subdirs():
            # Keycloak writes its scratch files as an unprivileged container user
            mode = SCRATCH_DIRECTORY_MODE if subdir.name == "tmp" else DIRECTORY_MODE
            await self.host.make_dirs(subdir, mode)
        await self.host.make_dirs(self.paths.config_dir, DIRECTORY_MODE)

    def generate_secrets(self) -> GeneratedSecrets:
        logger.info(f"[{self.host.name}] Generating secure passwords")
        if self.params.admin_password:
            return GeneratedSecrets(
                db_password=generate_secret(),
                admin_password=self.params.admin_password,
                admin_password_generated=False,
            )
        return GeneratedSecrets(
            db_password=generate_secret(),
            admin_password=generate_secure_password(),
            admin_password_generated=True,
        )

    async def write_configuration(self, secrets: GeneratedSecrets) -> None:
        """Write the environment file, the compose definition and the systemd unit."""
        await self.host.write_text(
            self.paths.env_file,
            self.renderer.render_env_file(self.params, self.paths, secrets),
            mode=SECRET_FILE_MODE,
        )
        logger.info(f"[{self.host.name}] Wrote {self.paths.env_file}")

        await self.host.write_text(self.paths.unit_file, self.renderer.render_unit_file(self.paths), mode=PUBLIC_FILE_MODE)
        logger.info(f"[{self.host.name}] Wrote {self.paths.unit_file}")

        # The compose file is the installation marker, so it is written last
        await self.host.write_text(self.paths.compose_file, self.renderer.render_compose_file(), mode=PUBLIC_FILE_MODE)
        logger.info(f"[{self.host.name}] Wrote {self.paths.compose_file}")

    async def start_service(self) -> None:
        logger.info(f"[{self.host.name}] Starting {self.paths.unit_name}")
        await self.systemctl.daemon_reload()
        await self.systemctl.enable(self.paths.unit_name)
        await self.systemctl.start(self.paths.unit_name)

    async def wait_for_ready(self) -> None:
        """
        Wait until the unit is active and docker reports the Keycloak container healthy.

        Raises:
            ReadinessTimeoutError: If either check does not pass in time; the unit status is logged first
        """
        unit = self.paths.unit_name
        container = self.settings.KEYCLOAK_CONTAINER_NAME

        async def unit_active() -> bool:
            return await self.systemctl.is_active(unit)

        async def container_healthy() -> bool:
            return await self.docker.container_health(container) == "healthy"

        try:
            await wait_until_ready(
                unit_active,
                f"{unit} on {self.host.name}",
                timeout=self.settings.READINESS_TIMEOUT,
                backoff_min=self.settings.READINESS_BACKOFF_MIN,
                backoff_max=self.settings.READINESS_BACKOFF_MAX,
            )
            await wait_until_ready(
                container_healthy,
                f"Keycloak container {container} on {self.host.name}",
                timeout=self.settings.READINESS_TIMEOUT,
                backoff_min=self.settings.READINESS_BACKOFF_MIN,
                backoff_max=self.settings.READINESS_BACKOFF_MAX,
            )
        except Exception:
            status = await self.systemctl.status(unit)
            logger.error(f"[{self.host.name}] {unit} did not become ready:\n{status}")
            raise
