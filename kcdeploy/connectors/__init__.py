"""
Connectors for the systems kcdeploy drives: hosts, systemd, Docker and the Keycloak admin API.
"""

from kcdeploy.connectors.docker import DockerConnector
from kcdeploy.connectors.host import HostCommandError, HostConnectionError, LocalHost, SSHHost
from kcdeploy.connectors.keycloak import KeycloakConnector
from kcdeploy.connectors.systemd import SystemctlConnector

__all__ = [
    "DockerConnector",
    "HostCommandError",
    "HostConnectionError",
    "KeycloakConnector",
    "LocalHost",
    "SSHHost",
    "SystemctlConnector",
]
