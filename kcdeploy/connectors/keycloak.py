"""
Keycloak connector for the admin REST API.

Used to configure realms and LDAP user federation on a freshly provisioned
server. All calls are structured JSON requests over httpx; nothing is passed
through a shell, so credentials never need quoting.
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USER_STORAGE_PROVIDER_TYPE = "org.keycloak.storage.UserStorageProvider"
LDAP_STORAGE_MAPPER_TYPE = "org.keycloak.storage.ldap.mappers.LDAPStorageMapper"


class KeycloakConnector:
    """Connector for interacting with the Keycloak admin API."""

    def __init__(
        self,
        keycloak_url: str,
        admin_username: str | None = None,
        admin_password: str | None = None,
        admin_realm: str = "master",
        timeout: float = 30.0,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Keycloak connector.

        Args:
            keycloak_url: Base URL of the Keycloak server
            admin_username: Admin username for Keycloak API access
            admin_password: Admin password for Keycloak API access
            admin_realm: Realm the admin user lives in
            timeout: Timeout in seconds for every HTTP request
            verify: Verify TLS certificates
            transport: Optional httpx transport (used by tests)
        """
        self.keycloak_url = keycloak_url.rstrip("/")
        self.admin_username = admin_username
        self.admin_password = admin_password
        self.admin_realm = admin_realm
        self.timeout = timeout
        self.verify = verify
        self._transport = transport
        self._access_token: str | None = None

        logger.debug(f"Initialized KeycloakConnector for {self.keycloak_url}")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, verify=self.verify, transport=self._transport)

    async def check_health(self, health_path: str = "/health/ready") -> bool:
        """
        Probe the health endpoint.

        Returns:
            True if the endpoint answered 200, False on any other status or transport error
        """
        url = f"{self.keycloak_url}{health_path}"
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Health check {url} failed: {e}")
            return False

        logger.debug(f"Health check {url} returned {response.status_code}")
        return response.status_code == 200

    async def _get_admin_token(self) -> str:
        """
        Get admin access token for Keycloak API.

        Returns:
            Admin access token

        Raises:
            ValueError: If no credentials were configured
            httpx.HTTPStatusError: If authentication fails
        """
        if self._access_token:
            return self._access_token

        if not self.admin_username or not self.admin_password:
            raise ValueError("Admin username and password are required for API access")

        token_url = f"{self.keycloak_url}/realms/{self.admin_realm}/protocol/openid-connect/token"

        data = {
            "grant_type": "password",
            "client_id": "admin-cli",
            "username": self.admin_username,
            "password": self.admin_password,
        }

        async with self._client() as client:
            response = await client.post(token_url, data=data)
            response.raise_for_status()

            self._access_token = response.json()["access_token"]

            logger.debug("Successfully obtained admin access token")
            return self._access_token

    async def _send(
        self, method: str, path: str, json_data: Any = None, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """
        Make an authenticated API request and return the raw response.

        Raises:
            httpx.HTTPStatusError: If the response status is 4xx or 5xx
        """
        token = await self._get_admin_token()
        url = f"{self.keycloak_url}/admin/realms{path}"

        headers = {"Authorization": f"Bearer {token}"}

        async with self._client() as client:
            response = await client.request(method=method, url=url, headers=headers, json=json_data, params=params)

        response.raise_for_status()
        return response

    async def _api_request(
        self, method: str, path: str, json_data: Any = None, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        """
        Make an authenticated API request to Keycloak.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API path below /admin/realms
            json_data: JSON data for request body
            params: Query parameters

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            httpx.HTTPStatusError: If request fails
        """
        response = await self._send(method, path, json_data=json_data, params=params)

        if response.status_code == 204:
            return None

        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()

        return None

    async def get_realm(self, realm_name: str) -> dict[str, Any] | None:
        """
        Get realm configuration.

        Returns:
            Realm representation or None if the realm does not exist
        """
        try:
            return await self._api_request("GET", f"/{realm_name}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise

    async def create_realm(self, realm_name: str, display_name: str | None = None) -> bool:
        """
        Create a realm unless it already exists.

        Args:
            realm_name: Name of the realm to create
            display_name: Optional display name for the realm

        Returns:
            True if the realm was created, False if it already existed
        """
        if await self.get_realm(realm_name) is not None:
            logger.info(f"Realm '{realm_name}' already exists")
            return False

        realm_data = {
            "realm": realm_name,
            "displayName": display_name or realm_name,
            "enabled": True,
        }

        try:
            await self._api_request("POST", "", json_data=realm_data)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 409:
                logger.info(f"Realm '{realm_name}' was created concurrently, using existing realm")
                return False
            raise

        logger.info(f"Created realm: {realm_name}")
        return True

    async def get_components(
        self, realm_name: str, parent_id: str | None = None, component_type: str | None = None, name: str | None = None
    ) -> list[dict[str, Any]]:
        """List components of a realm, filtered by parent, type and name."""
        params = {}
        if parent_id:
            params["parent"] = parent_id
        if component_type:
            params["type"] = component_type
        if name:
            params["name"] = name

        components = await self._api_request("GET", f"/{realm_name}/components", params=params)
        return components or []

    async def find_component(
        self, realm_name: str, name: str, component_type: str, parent_id: str | None = None
    ) -> dict[str, Any] | None:
        components = await self.get_components(realm_name, parent_id=parent_id, component_type=component_type, name=name)
        # The name filter is not exact on every Keycloak version
        for component in components:
            if component.get("name") == name:
                return component
        return None

    async def create_component(self, realm_name: str, component: dict[str, Any]) -> str:
        """
        Create a component and return its id.

        The id is taken from the Location header of the 201 response.

        Raises:
            httpx.HTTPStatusError: If the request fails (including 409 Conflict)
        """
        response = await self._send("POST", f"/{realm_name}/components", json_data=component)

        location = response.headers.get("location", "")
        component_id = location.rstrip("/").rsplit("/", 1)[-1] if location else ""
        if component_id:
            return component_id

        created = await self.find_component(
            realm_name, component["name"], component["providerType"], component.get("parentId")
        )
        if not created:
            raise RuntimeError(f"Component '{component['name']}' was created but cannot be found")
        return created["id"]

    async def ensure_component(self, realm_name: str, component: dict[str, Any]) -> tuple[str, bool]:
        """
        Create a component unless one with the same name, type and parent exists.

        Returns:
            Tuple of (component id, created)
        """
        name = component["name"]
        provider_type = component["providerType"]
        parent_id = component.get("parentId")

        existing = await self.find_component(realm_name, name, provider_type, parent_id)
        if existing:
            logger.info(f"Component '{name}' already exists in realm '{realm_name}' (id {existing['id']})")
            return existing["id"], False

        try:
            component_id = await self.create_component(realm_name, component)
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 409:
                raise
            existing = await self.find_component(realm_name, name, provider_type, parent_id)
            if not existing:
                raise
            logger.info(f"Component '{name}' already exists in realm '{realm_name}' (id {existing['id']})")
            return existing["id"], False

        logger.info(f"Created component '{name}' in realm '{realm_name}' (id {component_id})")
        return component_id, True

    async def trigger_user_storage_sync(self, realm_name: str, provider_id: str, full: bool = True) -> dict[str, Any]:
        """
        Trigger a synchronization of a user storage provider.

        Args:
            realm_name: Name of the realm
            provider_id: Id of the user storage component
            full: Full sync if True, changed users only otherwise

        Returns:
            Keycloak's SynchronizationResult (added, updated, removed, failed, status)
        """
        action = "triggerFullSync" if full else "triggerChangedUsersSync"
        logger.info(f"Triggering {action} for provider {provider_id} in realm '{realm_name}'")

        result = await self._api_request("POST", f"/{realm_name}/user-storage/{provider_id}/sync", params={"action": action})
        return result or {}

    async def test_ldap_connection(self, realm_name: str, action: str, settings: dict[str, Any]) -> tuple[bool, str]:
        """
        Run one of Keycloak's LDAP self-tests.

        Args:
            realm_name: Name of the realm
            action: "testConnection" or "testAuthentication"
            settings: connectionUrl, bindDn, bindCredential, useTruststoreSpi,
                connectionTimeout, startTls, authType and componentId

        Returns:
            Tuple of (success, error message)
        """
        payload = {"action": action, **settings}
        try:
            await self._api_request("POST", f"/{realm_name}/testLDAPConnection", json_data=payload)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 400:
                try:
                    body = e.response.json()
                except ValueError:
                    body = {}
                message = body.get("errorMessage") or body.get("error") or e.response.text
                logger.debug(f"LDAP {action} failed: {message}")
                return False, message
            raise

        return True, ""

    def get_discovery_url(self, realm_name: str) -> str:
        return f"{self.keycloak_url}/realms/{realm_name}/.well-known/openid-configuration"
