"""
Deploy Keycloak to a fleet of hosts over SSH and configure LDAP federation.

Usage:
    kcdeploy-fleet deploy --inventory hosts.yml [--forks 10] [--federate] [--limit host1,host2]
    kcdeploy-fleet federate --inventory hosts.yml
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from kcdeploy.core.config import Settings, settings
from kcdeploy.fleet.inventory import InventoryError, load_inventory
from kcdeploy.fleet.runner import Fleet, format_results

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _host_list(value: str) -> list[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


def build_parser(config: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kcdeploy-fleet", description="Deploy Keycloak to many hosts and configure LDAP federation."
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-i", "--inventory", required=True, help="Path to the YAML inventory")
    common.add_argument(
        "-f",
        "--forks",
        type=_positive_int,
        default=config.FLEET_FORKS,
        help=f"Number of hosts processed in parallel (default: {config.FLEET_FORKS})",
    )
    common.add_argument("--limit", type=_host_list, help="Comma separated subset of inventory hosts")

    subparsers = parser.add_subparsers(dest="command", required=True)
    deploy = subparsers.add_parser(
        "deploy", parents=[common], help="Install Keycloak and the optional reverse proxy on every host"
    )
    deploy.add_argument(
        "--federate", action="store_true", help="Also configure LDAP federation on hosts that define it"
    )
    subparsers.add_parser("federate", parents=[common], help="Configure LDAP federation on every host")
    return parser


async def main(argv: Sequence[str] | None = None, config: Settings | None = None, **fleet_options) -> int:
    """
    Run a fleet command.

    Returns:
        0 when every host succeeded, 1 otherwise
    """
    config = config or settings
    args = build_parser(config).parse_args(argv)

    try:
        inventory = load_inventory(args.inventory, config)
        hosts = inventory.select(args.limit)
    except InventoryError as e:
        logger.error(f"❌ {e}")
        return 1

    fleet = Fleet(hosts, config, forks=args.forks, **fleet_options)
    logger.info(f"Running {args.command} on {fleet}")

    if args.command == "deploy":
        results = await fleet.deploy(federate=args.federate)
    else:
        results = await fleet.federate()

    logger.info("Results:\n" + format_results(results))

    failed = [result.host for result in results if not result.success]
    if failed:
        logger.error(f"❌ {args.command} failed on {len(failed)} of {len(results)} hosts: {', '.join(failed)}")
        return 1
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.warning("Interrupted; hosts may be partially provisioned and have to be rerun")
        sys.exit(130)


if __name__ == "__main__":
    run()
