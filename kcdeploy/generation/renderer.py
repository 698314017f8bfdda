"""
Rendering of the files an installation consists of.

Every artifact is a Jinja2 template shipped in kcdeploy/templates:
- the service environment file (credentials and Keycloak settings)
- the docker compose definition
- the systemd unit
- the info report written for the operator, and the console summary
- the status report for hosts that are already installed
- the nginx virtual host for reverse proxy deployments
"""

import logging
from datetime import datetime
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined

from kcdeploy.core.config import Settings
from kcdeploy.core.parameters import (
    GeneratedSecrets,
    InstallationParameters,
    InstallationPaths,
    ReverseProxyParameters,
)
from kcdeploy.utils.env_file import quote_env_value

logger = logging.getLogger(__name__)

ENV_TEMPLATE = "keycloak.env.jinja"
COMPOSE_TEMPLATE = "docker-compose.yml.jinja"
UNIT_TEMPLATE = "keycloak.service.jinja"
INFO_TEMPLATE = "keycloak-info.txt.jinja"
SUMMARY_TEMPLATE = "summary.txt.jinja"
STATUS_TEMPLATE = "status.txt.jinja"
NGINX_TEMPLATE = "nginx-site.conf.jinja"


class ConfigRenderer:
    """Renders installation artifacts from the packaged templates."""

    def __init__(self, settings: Settings):
        self.settings = settings
        # trim_blocks removes newlines after block tags
        # lstrip_blocks removes leading whitespace from line start to block tag
        self.env = Environment(
            loader=PackageLoader("kcdeploy", "templates"),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters["env"] = quote_env_value
        logger.debug("ConfigRenderer initialized")

    def render(self, template_name: str, variables: dict[str, Any]) -> str:
        """
        Render a packaged template.

        Args:
            template_name: File name below kcdeploy/templates
            variables: Template variables

        Returns:
            The rendered text

        Raises:
            RuntimeError: If the template is missing or references an undefined variable
        """
        logger.debug(f"Rendering {template_name} with variables: {list(variables.keys())}")
        try:
            template = self.env.get_template(template_name)
            return template.render(**variables)
        except Exception as e:
            error_msg = f"Error rendering {template_name}: {e}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    def _installation_variables(
        self, params: InstallationParameters, paths: InstallationPaths, secrets: GeneratedSecrets
    ) -> dict[str, Any]:
        return {
            "params": params,
            "paths": paths,
            "secrets": secrets,
            "db_name": self.settings.DB_NAME,
            "db_user": self.settings.DB_USER,
            "keycloak_container": self.settings.KEYCLOAK_CONTAINER_NAME,
            "postgres_container": self.settings.POSTGRES_CONTAINER_NAME,
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }

    def render_env_file(self, params: InstallationParameters, paths: InstallationPaths, secrets: GeneratedSecrets) -> str:
        return self.render(ENV_TEMPLATE, self._installation_variables(params, paths, secrets))

    def render_compose_file(self) -> str:
        return self.render(
            COMPOSE_TEMPLATE,
            {
                "postgres_image": self.settings.POSTGRES_IMAGE,
                "postgres_container": self.settings.POSTGRES_CONTAINER_NAME,
                "keycloak_image": self.settings.KEYCLOAK_IMAGE,
                "keycloak_container": self.settings.KEYCLOAK_CONTAINER_NAME,
                "health_port": self.settings.KEYCLOAK_MANAGEMENT_PORT,
            },
        )

    def render_unit_file(self, paths: InstallationPaths) -> str:
        return self.render(UNIT_TEMPLATE, {"paths": paths})

    def render_info_file(self, params: InstallationParameters, paths: InstallationPaths, secrets: GeneratedSecrets) -> str:
        return self.render(INFO_TEMPLATE, self._installation_variables(params, paths, secrets))

    def render_summary(self, params: InstallationParameters, paths: InstallationPaths, secrets: GeneratedSecrets) -> str:
        return self.render(SUMMARY_TEMPLATE, self._installation_variables(params, paths, secrets))

    def render_status(
        self,
        paths: InstallationPaths,
        env_values: dict[str, str],
        service_active: bool,
        container_health: str | None,
    ) -> str:
        """
        Render the report shown when a host is already installed.

        Args:
            paths: Installation layout
            env_values: Parsed service environment file (may be empty)
            service_active: Whether the systemd unit is active
            container_health: Health status docker reports for the Keycloak container
        """
        return self.render(
            STATUS_TEMPLATE,
            {
                "paths": paths,
                "keycloak_url": env_values.get("KEYCLOAK_URL"),
                "admin_user": env_values.get("KEYCLOAK_ADMIN"),
                "service_active": service_active,
                "container_health": container_health,
            },
        )

    def render_nginx_site(self, params: InstallationParameters, proxy: ReverseProxyParameters) -> str:
        # A wildcard listen address is reachable through loopback
        upstream_host = "127.0.0.1" if params.listen_address in ("0.0.0.0", "::") else params.listen_address
        return self.render(
            NGINX_TEMPLATE,
            {
                "params": params,
                "server_name": proxy.server_name or params.domain,
                "upstream_host": upstream_host,
            },
        )
