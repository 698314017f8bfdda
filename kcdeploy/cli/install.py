"""
Install Keycloak SSO server with PostgreSQL via Docker on this machine.

Usage:
    sudo kcdeploy-install --domain auth.example.com --admin-password MySecurePass123
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from kcdeploy.connectors.host import Host, HostCommandError, LocalHost
from kcdeploy.core.config import Settings, settings
from kcdeploy.core.parameters import InstallationParameters
from kcdeploy.core.readiness import ReadinessTimeoutError
from kcdeploy.manager.installation_manager import EnvironmentCheckError, InstallationManager

logger = logging.getLogger(__name__)

EPILOG = """\
examples:
  # Test installation with defaults (localhost)
  sudo kcdeploy-install

  # Production installation with domain
  sudo kcdeploy-install --domain auth.example.com --admin-password MySecurePass123

  # Custom configuration
  sudo kcdeploy-install --domain auth.local --http-port 9000 --listen 0.0.0.0 --behind-proxy false

notes:
  - This command must be run as root
  - Admin password will be auto-generated if not provided
  - If behind reverse proxy, configure HTTPS on your proxy (required for OAuth)
  - Credentials will be stored in {info_file}
"""


def _parse_bool(value: str) -> bool:
    return value.lower() == "true"


def build_parser(config: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kcdeploy-install",
        description="Install Keycloak SSO server with PostgreSQL via Docker.",
        epilog=EPILOG.format(info_file=config.INFO_FILE),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-d", "--domain", help=f"Domain name for Keycloak (default: {config.DEFAULT_DOMAIN})"
    )
    parser.add_argument(
        "-l",
        "--listen",
        dest="listen_address",
        metavar="ADDRESS",
        help=f"Listen address (default: {config.DEFAULT_LISTEN_ADDRESS} for reverse proxy)",
    )
    parser.add_argument(
        "-p", "--http-port", metavar="PORT", help=f"HTTP port for Keycloak (default: {config.DEFAULT_HTTP_PORT})"
    )
    parser.add_argument(
        "-u", "--admin-user", metavar="USERNAME", help=f"Admin username (default: {config.DEFAULT_ADMIN_USER})"
    )
    parser.add_argument(
        "-P", "--admin-password", metavar="PASSWORD", help="Admin password (auto-generated if not provided)"
    )
    parser.add_argument(
        "--behind-proxy",
        type=str.lower,
        choices=["true", "false"],
        help=f"Running behind reverse proxy (default: {str(config.DEFAULT_BEHIND_PROXY).lower()})",
    )
    parser.add_argument(
        "--skip-docker", action="store_true", help="Skip Docker installation (use if already installed)"
    )
    return parser


def parameters_from_args(args: argparse.Namespace, config: Settings) -> InstallationParameters:
    return InstallationParameters.from_settings(
        config,
        domain=args.domain,
        listen_address=args.listen_address,
        http_port=args.http_port,
        admin_user=args.admin_user,
        admin_password=args.admin_password,
        behind_proxy=_parse_bool(args.behind_proxy) if args.behind_proxy is not None else None,
        skip_docker=args.skip_docker,
    )


async def main(argv: Sequence[str] | None = None, host: Host | None = None, config: Settings | None = None) -> int:
    """
    Run the installer.

    Returns:
        Process exit code: 0 on success, 1 on environment or runtime failure
    """
    config = config or settings
    parser = build_parser(config)
    args = parser.parse_args(argv)
    try:
        params = parameters_from_args(args, config)
    except ValueError as e:
        parser.error(str(e))
    host = host or LocalHost(command_timeout=config.SSH_TIMEOUT)

    if not await host.is_root():
        logger.error("❌ This command must be run as root (use sudo)")
        return 1

    logger.info("Starting Keycloak installation...")
    logger.info(f"Domain: {params.domain}")
    logger.info(f"Listen Address: {params.listen_address}")
    logger.info(f"HTTP Port: {params.http_port}")
    logger.info(f"Behind Proxy: {str(params.behind_proxy).lower()}")

    manager = InstallationManager(host, config, params)
    try:
        await manager.install()
    except EnvironmentCheckError as e:
        logger.error(f"❌ {e}")
        return 1
    except (HostCommandError, ReadinessTimeoutError, RuntimeError, OSError) as e:
        logger.error(f"❌ Installation failed: {e}")
        return 1

    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.warning("Interrupted; the installation may be incomplete and has to be rerun")
        sys.exit(130)


if __name__ == "__main__":
    run()
