"""
Parameter models passed through the provisioning and federation steps.

Everything a run needs is resolved into these objects up front (defaults from
Settings merged with CLI flags or inventory values) and is not changed afterwards.
"""

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from kcdeploy.core.config import Settings

DATA_SUBDIRECTORIES = ("postgres", "keycloak", "tmp")


class InstallationParameters(BaseModel):
    """Parameters of a single Keycloak installation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    domain: str
    listen_address: str
    http_port: str
    admin_user: str
    admin_password: str | None = None
    behind_proxy: bool = True
    skip_docker: bool = False

    @field_validator("http_port", mode="before")
    @classmethod
    def _port_as_string(cls, value: Any) -> Any:
        # YAML inventories give us integers, the env file only knows strings
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def keycloak_url(self) -> str:
        if self.behind_proxy:
            return f"https://{self.domain}"
        return f"http://{self.domain}:{self.http_port}"

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "InstallationParameters":
        """
        Merge the configured defaults with explicit overrides.

        Overrides that are None are ignored, so argparse namespaces can be passed
        in directly.

        Raises:
            ValueError: If the HTTP port collides with the Keycloak management port
        """
        values: dict[str, Any] = {
            "domain": settings.DEFAULT_DOMAIN,
            "listen_address": settings.DEFAULT_LISTEN_ADDRESS,
            "http_port": settings.DEFAULT_HTTP_PORT,
            "admin_user": settings.DEFAULT_ADMIN_USER,
            "admin_password": None,
            "behind_proxy": settings.DEFAULT_BEHIND_PROXY,
            "skip_docker": False,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        params = cls(**values)
        if params.http_port == settings.KEYCLOAK_MANAGEMENT_PORT:
            raise ValueError(
                f"HTTP port {params.http_port} is the Keycloak management port; "
                "choose another port or change KEYCLOAK_MANAGEMENT_PORT"
            )
        return params


@dataclass(frozen=True)
class InstallationPaths:
    """Filesystem layout of an installation on the target host."""

    install_dir: PurePosixPath
    systemd_unit_dir: PurePosixPath
    service_name: str
    info_file: PurePosixPath

    @classmethod
    def from_settings(cls, settings: Settings) -> "InstallationPaths":
        return cls(
            install_dir=PurePosixPath(settings.INSTALL_DIR),
            systemd_unit_dir=PurePosixPath(settings.SYSTEMD_UNIT_DIR),
            service_name=settings.SERVICE_NAME,
            info_file=PurePosixPath(settings.INFO_FILE),
        )

    @property
    def data_dir(self) -> PurePosixPath:
        return self.install_dir / "data"

    @property
    def config_dir(self) -> PurePosixPath:
        return self.install_dir / "config"

    @property
    def env_file(self) -> PurePosixPath:
        return self.config_dir / ".env"

    @property
    def compose_file(self) -> PurePosixPath:
        """The compose definition doubles as the installation marker."""
        return self.install_dir / "docker-compose.yml"

    @property
    def unit_name(self) -> str:
        return f"{self.service_name}.service"

    @property
    def unit_file(self) -> PurePosixPath:
        return self.systemd_unit_dir / self.unit_name

    def data_subdirs(self) -> list[PurePosixPath]:
        return [self.data_dir / name for name in DATA_SUBDIRECTORIES]


@dataclass(frozen=True)
class GeneratedSecrets:
    db_password: str
    admin_password: str
    admin_password_generated: bool


class ReverseProxyParameters(BaseModel):
    """nginx virtual host and certbot settings for fleet deployments."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    server_name: str | None = None
    certbot_email: str | None = None
    request_certificate: bool = True
    certbot_staging: bool = False
    site_name: str = "keycloak"
    sites_available_dir: str = "/etc/nginx/sites-available"
    sites_enabled_dir: str = "/etc/nginx/sites-enabled"
    letsencrypt_live_dir: str = "/etc/letsencrypt/live"


LdapVendor = Literal["ad", "other"]

# Attribute defaults per directory vendor, matching what the Keycloak admin console proposes
VENDOR_PRESETS: dict[str, dict[str, str]] = {
    "ad": {
        "username_ldap_attribute": "sAMAccountName",
        "rdn_ldap_attribute": "cn",
        "uuid_ldap_attribute": "objectGUID",
        "user_object_classes": "person, organizationalPerson, user",
        "group_object_classes": "group",
    },
    "other": {
        "username_ldap_attribute": "uid",
        "rdn_ldap_attribute": "uid",
        "uuid_ldap_attribute": "entryUUID",
        "user_object_classes": "inetOrgPerson, organizationalPerson",
        "group_object_classes": "groupOfNames",
    },
}


class FederationParameters(BaseModel):
    """Realm and LDAP user-federation settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Admin API access; missing values are resolved per host
    keycloak_url: str | None = None
    admin_user: str | None = None
    admin_password: str | None = None
    admin_realm: str = "master"

    realm: str
    realm_display_name: str | None = None

    provider_name: str = "ldap"
    vendor: LdapVendor = "ad"
    connection_url: str
    bind_dn: str
    bind_credential: str
    users_dn: str
    user_search_filter: str = ""
    search_scope: Literal[1, 2] = 2
    username_ldap_attribute: str | None = None
    rdn_ldap_attribute: str | None = None
    uuid_ldap_attribute: str | None = None
    user_object_classes: str | None = None
    edit_mode: Literal["READ_ONLY", "WRITABLE", "UNSYNCED"] = "READ_ONLY"
    pagination: bool = True
    import_enabled: bool = True
    sync_registrations: bool = False
    batch_size: int = 1000
    connection_timeout_ms: int | None = None
    start_tls: bool = False
    use_truststore_spi: str = "always"

    periodic_full_sync: bool = False
    full_sync_period: int = 604800
    periodic_changed_sync: bool = False
    changed_sync_period: int = 86400
    trigger_full_sync: bool = True

    groups_dn: str | None = None
    group_mapper_name: str = "groups"
    group_name_ldap_attribute: str = "cn"
    group_object_classes: str | None = None
    membership_ldap_attribute: str = "member"
    membership_attribute_type: Literal["DN", "UID"] = "DN"
    group_mapper_mode: Literal["READ_ONLY", "LDAP_ONLY", "IMPORT"] = "READ_ONLY"
    groups_path: str = "/"

    run_self_tests: bool = True

    def vendor_default(self, field: str) -> str:
        """Return the explicit value of an attribute field or the vendor preset."""
        value = getattr(self, field)
        if value:
            return value
        return VENDOR_PRESETS[self.vendor][field]
