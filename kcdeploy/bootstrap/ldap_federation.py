"""
LDAP user federation bootstrap.

Configures a realm on a running Keycloak server with an LDAP/Active Directory
user storage provider, an optional group mapper, an initial sync, and verifies
the configuration with Keycloak's own connection and authentication tests.
Every step is idempotent: existing objects are looked up first and reused.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from kcdeploy.connectors.keycloak import LDAP_STORAGE_MAPPER_TYPE, USER_STORAGE_PROVIDER_TYPE, KeycloakConnector
from kcdeploy.core.config import Settings
from kcdeploy.core.parameters import FederationParameters
from kcdeploy.core.readiness import wait_until_ready

logger = logging.getLogger(__name__)

SELF_TESTS = ("testConnection", "testAuthentication")
DISABLED_SYNC_PERIOD = -1


class FederationSelfTestError(Exception):
    """Exception raised when Keycloak cannot connect or bind to the directory."""


@dataclass
class SelfTestResult:
    action: str
    success: bool
    message: str = ""


@dataclass
class FederationReport:
    realm: str
    realm_created: bool = False
    provider_id: str | None = None
    provider_created: bool = False
    sync_result: dict[str, Any] | None = None
    group_mapper_id: str | None = None
    group_mapper_created: bool = False
    self_tests: list[SelfTestResult] = field(default_factory=list)

    @property
    def self_tests_passed(self) -> bool:
        return all(test.success for test in self.self_tests)


def _config(values: dict[str, Any]) -> dict[str, list[str]]:
    """Component config values are lists of strings in the admin API."""
    config = {}
    for key, value in values.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = str(value).lower()
        config[key] = [str(value)]
    return config


def build_ldap_provider(params: FederationParameters, realm_id: str) -> dict[str, Any]:
    """
    Build the component representation of the LDAP user storage provider.

    Args:
        params: Federation parameters
        realm_id: Id of the realm the provider belongs to (its parentId)

    Returns:
        Component representation for POST /admin/realms/{realm}/components
    """
    return {
        "name": params.provider_name,
        "providerId": "ldap",
        "providerType": USER_STORAGE_PROVIDER_TYPE,
        "parentId": realm_id,
        "config": _config(
            {
                "enabled": True,
                "vendor": params.vendor,
                "connectionUrl": params.connection_url,
                "startTls": params.start_tls,
                "useTruststoreSpi": params.use_truststore_spi,
                "connectionTimeout": params.connection_timeout_ms,
                "authType": "simple",
                "bindDn": params.bind_dn,
                "bindCredential": params.bind_credential,
                "usersDn": params.users_dn,
                "customUserSearchFilter": params.user_search_filter,
                "searchScope": params.search_scope,
                "usernameLDAPAttribute": params.vendor_default("username_ldap_attribute"),
                "rdnLDAPAttribute": params.vendor_default("rdn_ldap_attribute"),
                "uuidLDAPAttribute": params.vendor_default("uuid_ldap_attribute"),
                "userObjectClasses": params.vendor_default("user_object_classes"),
                "editMode": params.edit_mode,
                "pagination": params.pagination,
                "importEnabled": params.import_enabled,
                "syncRegistrations": params.sync_registrations,
                "batchSizeForSync": params.batch_size,
                "fullSyncPeriod": params.full_sync_period if params.periodic_full_sync else DISABLED_SYNC_PERIOD,
                "changedSyncPeriod": (
                    params.changed_sync_period if params.periodic_changed_sync else DISABLED_SYNC_PERIOD
                ),
                "trustEmail": False,
                "cachePolicy": "DEFAULT",
            }
        ),
    }


def build_group_mapper(params: FederationParameters, provider_id: str) -> dict[str, Any]:
    """Build the group-ldap-mapper component attached to the LDAP provider."""
    return {
        "name": params.group_mapper_name,
        "providerId": "group-ldap-mapper",
        "providerType": LDAP_STORAGE_MAPPER_TYPE,
        "parentId": provider_id,
        "config": _config(
            {
                "groups.dn": params.groups_dn,
                "group.name.ldap.attribute": params.group_name_ldap_attribute,
                "group.object.classes": params.vendor_default("group_object_classes"),
                "preserve.group.inheritance": True,
                "ignore.missing.groups": False,
                "membership.ldap.attribute": params.membership_ldap_attribute,
                "membership.attribute.type": params.membership_attribute_type,
                "membership.user.ldap.attribute": params.vendor_default("username_ldap_attribute"),
                "mode": params.group_mapper_mode,
                "user.roles.retrieve.strategy": "LOAD_GROUPS_BY_MEMBER_ATTRIBUTE",
                "memberof.ldap.attribute": "memberOf",
                "drop.non.existing.groups.during.sync": False,
                "groups.path": params.groups_path,
            }
        ),
    }


class LdapFederationSetup:
    """Runs the realm and LDAP federation setup sequence against one Keycloak server."""

    def __init__(self, keycloak: KeycloakConnector, params: FederationParameters, settings: Settings):
        self.keycloak = keycloak
        self.params = params
        self.settings = settings
        self.report = FederationReport(realm=params.realm)

    async def setup_all(self) -> FederationReport:
        """
        Run the complete federation setup sequence.

        Returns:
            FederationReport with the outcome of every step

        Raises:
            ReadinessTimeoutError: If Keycloak does not answer in time
            httpx.HTTPStatusError: If an admin API call fails for another reason than "already exists"
            FederationSelfTestError: If a connection or authentication test fails
        """
        realm = self.params.realm
        logger.info(f"Starting LDAP federation setup for realm '{realm}' on {self.keycloak.keycloak_url}")

        await self.wait_for_keycloak()
        await self.setup_realm()
        await self.setup_ldap_provider()

        if self.params.trigger_full_sync:
            await self.sync_users()

        if self.params.groups_dn:
            await self.setup_group_mapper()
        else:
            logger.debug("No groups DN configured, skipping group mapper")

        if self.params.run_self_tests:
            await self.run_self_tests()

        logger.info(f"LDAP federation setup for realm '{realm}' completed successfully")
        return self.report

    async def wait_for_keycloak(self) -> None:
        async def healthy() -> bool:
            return await self.keycloak.check_health(self.settings.HEALTH_PATH)

        await wait_until_ready(
            healthy,
            f"Keycloak at {self.keycloak.keycloak_url}",
            timeout=self.settings.READINESS_TIMEOUT,
            backoff_min=self.settings.READINESS_BACKOFF_MIN,
            backoff_max=self.settings.READINESS_BACKOFF_MAX,
        )

    async def setup_realm(self) -> None:
        """Step 1: Create the realm if it does not exist."""
        logger.info(f"Step 1: Setting up realm '{self.params.realm}'")
        self.report.realm_created = await self.keycloak.create_realm(
            self.params.realm, self.params.realm_display_name
        )

    async def setup_ldap_provider(self) -> None:
        """Step 2: Register the LDAP user storage provider."""
        logger.info(f"Step 2: Setting up LDAP provider '{self.params.provider_name}' ({self.params.connection_url})")

        realm = await self.keycloak.get_realm(self.params.realm)
        if realm is None:
            raise RuntimeError(f"Realm '{self.params.realm}' not found after creation")

        component = build_ldap_provider(self.params, realm.get("id", self.params.realm))
        provider_id, created = await self.keycloak.ensure_component(self.params.realm, component)
        self.report.provider_id = provider_id
        self.report.provider_created = created

    async def sync_users(self) -> None:
        """Step 3: Trigger a full synchronization of the LDAP users."""
        logger.info("Step 3: Triggering full user synchronization")
        result = await self.keycloak.trigger_user_storage_sync(self.params.realm, self.report.provider_id, full=True)
        self.report.sync_result = result
        if result:
            logger.info(f"Synchronization result: {result.get('status', result)}")

    async def setup_group_mapper(self) -> None:
        """Step 4: Register the group mapper below the LDAP provider."""
        logger.info(f"Step 4: Setting up group mapper '{self.params.group_mapper_name}' for {self.params.groups_dn}")
        component = build_group_mapper(self.params, self.report.provider_id)
        mapper_id, created = await self.keycloak.ensure_component(self.params.realm, component)
        self.report.group_mapper_id = mapper_id
        self.report.group_mapper_created = created

    async def run_self_tests(self) -> None:
        """
        Step 5: Run Keycloak's LDAP connection and authentication tests.

        Raises:
            FederationSelfTestError: If any of the tests fails
        """
        logger.info("Step 5: Testing LDAP connection and authentication")
        test_settings = {
            "connectionUrl": self.params.connection_url,
            "bindDn": self.params.bind_dn,
            "bindCredential": self.params.bind_credential,
            "useTruststoreSpi": self.params.use_truststore_spi,
            "startTls": str(self.params.start_tls).lower(),
            "authType": "simple",
            "componentId": self.report.provider_id,
        }
        if self.params.connection_timeout_ms is not None:
            test_settings["connectionTimeout"] = str(self.params.connection_timeout_ms)

        for action in SELF_TESTS:
            success, message = await self.keycloak.test_ldap_connection(self.params.realm, action, test_settings)
            self.report.self_tests.append(SelfTestResult(action=action, success=success, message=message))
            if success:
                logger.info(f"LDAP {action}: OK")
            else:
                logger.error(f"LDAP {action}: FAILED {message}")

        if not self.report.self_tests_passed:
            failed = ", ".join(test.action for test in self.report.self_tests if not test.success)
            raise FederationSelfTestError(f"LDAP self-tests failed for realm '{self.params.realm}': {failed}")
