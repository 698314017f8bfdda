"""
Shared fixtures: a host that records commands instead of running them, and an
in-memory Keycloak admin API served through httpx.MockTransport.
"""

import json
import uuid
from pathlib import Path

import httpx
import pytest

from kcdeploy.connectors.host import CommandResult, HostConnectionError, LocalHost
from kcdeploy.connectors.keycloak import KeycloakConnector
from kcdeploy.core.config import Settings

MUTATING_COMMANDS = (
    ["systemctl", "daemon-reload"],
    ["systemctl", "enable"],
    ["systemctl", "start"],
    ["systemctl", "reload"],
    ["sh", "-c", "curl"],
    ["apt-get"],
    ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get"],
    ["certbot"],
)


class RecordingHost(LocalHost):
    """
    LocalHost whose commands are recorded and answered from scripted results.

    File operations still go to the real file system, so tests point the
    installation paths into tmp_path.
    """

    def __init__(self, name: str = "test-host", root: bool = True, reachable: bool = True):
        super().__init__()
        self.name = name
        self.root = root
        self.reachable = reachable
        self.commands: list[list[str]] = []
        self.file_operations: list[tuple[str, str]] = []
        self._responses: list[tuple[list[str], int, str, str]] = []

    def respond(self, prefix: list[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Answer commands starting with prefix; later rules take precedence."""
        self._responses.insert(0, (prefix, returncode, stdout, stderr))

    async def _execute(self, args, input_data):
        self.commands.append(args)
        if not self.reachable:
            raise HostConnectionError(f"Cannot connect to {self.name}: Connection refused")
        for prefix, returncode, stdout, stderr in self._responses:
            if args[: len(prefix)] == prefix:
                return CommandResult(args, returncode, stdout, stderr)
        return CommandResult(args, 0, "", "")

    async def is_root(self) -> bool:
        return self.root

    async def make_dirs(self, path, mode=0o755):
        self.file_operations.append(("make_dirs", str(path)))
        await super().make_dirs(path, mode)

    async def write_text(self, path, content, mode=0o644):
        self.file_operations.append(("write_text", str(path)))
        await super().write_text(path, content, mode)

    async def symlink(self, target, link):
        self.file_operations.append(("symlink", str(link)))
        await super().symlink(target, link)

    def ran(self, *prefix: str) -> bool:
        return any(command[: len(prefix)] == list(prefix) for command in self.commands)

    def mutating_commands(self) -> list[list[str]]:
        return [command for command in self.commands if any(_matches(command, p) for p in MUTATING_COMMANDS)]


def _matches(command: list[str], prefix: list[str]) -> bool:
    if prefix[:2] == ["sh", "-c"]:
        return command[:2] == ["sh", "-c"] and len(command) > 2 and command[2].startswith(prefix[2])
    return command[: len(prefix)] == prefix


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        INSTALL_DIR=str(tmp_path / "opt" / "keycloak"),
        SYSTEMD_UNIT_DIR=str(tmp_path / "etc" / "systemd" / "system"),
        INFO_FILE=str(tmp_path / "root" / "keycloak-info.txt"),
        READINESS_TIMEOUT=0.2,
        READINESS_BACKOFF_MIN=0.01,
        READINESS_BACKOFF_MAX=0.02,
        FLEET_FORKS=2,
    )


@pytest.fixture
def host() -> RecordingHost:
    """A root host with docker installed and running and a healthy Keycloak container."""
    recording_host = RecordingHost()
    recording_host.respond(["docker", "inspect"], stdout="healthy")
    return recording_host


@pytest.fixture
def make_host():
    """Factory for healthy hosts; pass reachable=False or root=False for broken ones."""

    def factory(name: str, reachable: bool = True, root: bool = True) -> RecordingHost:
        recording_host = RecordingHost(name, root=root, reachable=reachable)
        recording_host.respond(["docker", "inspect"], stdout="healthy")
        return recording_host

    return factory


class FakeKeycloak:
    """Minimal in-memory Keycloak admin API."""

    def __init__(self, health_path: str = "/realms/master/.well-known/openid-configuration"):
        self.health_path = health_path
        self.realms: dict[str, dict] = {"master": {"id": "master-id", "realm": "master"}}
        self.components: dict[str, list[dict]] = {}
        self.requests: list[httpx.Request] = []
        self.ldap_test_errors: dict[str, str] = {}
        self.component_status: int | None = None
        self.healthy = True

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def connector(self, url: str = "http://kc.test:8080") -> KeycloakConnector:
        return KeycloakConnector(url, admin_username="admin", admin_password="secret", transport=self.transport())

    def posts(self, path_suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST" and r.url.path.endswith(path_suffix)]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == self.health_path:
            return httpx.Response(200 if self.healthy else 503, json={})

        if path == "/realms/master/protocol/openid-connect/token":
            return httpx.Response(200, json={"access_token": "token", "expires_in": 60})

        assert request.headers["Authorization"] == "Bearer token"
        parts = path.removeprefix("/admin/realms").strip("/").split("/")
        realm = parts[0]

        if path == "/admin/realms" and request.method == "POST":
            body = json.loads(request.content)
            if body["realm"] in self.realms:
                return httpx.Response(409, json={"errorMessage": "Conflict detected"})
            self.realms[body["realm"]] = {"id": f"{body['realm']}-id", **body}
            return httpx.Response(201)

        if len(parts) == 1 and request.method == "GET":
            if realm not in self.realms:
                return httpx.Response(404, json={"error": "Realm not found."})
            return httpx.Response(200, json=self.realms[realm])

        if parts[1:] == ["components"]:
            return self._components(request, realm)

        if parts[1] == "user-storage" and parts[-1] == "sync":
            return httpx.Response(200, json={"added": 3, "updated": 0, "removed": 0, "failed": 0, "status": "3 imported users"})

        if parts[1:] == ["testLDAPConnection"]:
            action = json.loads(request.content)["action"]
            if action in self.ldap_test_errors:
                return httpx.Response(400, json={"errorMessage": self.ldap_test_errors[action]})
            return httpx.Response(204)

        return httpx.Response(404, json={"error": f"unexpected {request.method} {path}"})

    def _components(self, request: httpx.Request, realm: str) -> httpx.Response:
        components = self.components.setdefault(realm, [])
        if request.method == "GET":
            params = request.url.params
            matches = [
                c
                for c in components
                if ("type" not in params or c["providerType"] == params["type"])
                and ("parent" not in params or c.get("parentId") == params["parent"])
                and ("name" not in params or c["name"] == params["name"])
            ]
            return httpx.Response(200, json=matches)

        if self.component_status is not None:
            return httpx.Response(self.component_status, json={"errorMessage": "scripted failure"})

        body = json.loads(request.content)
        if any(c["name"] == body["name"] and c.get("parentId") == body.get("parentId") for c in components):
            return httpx.Response(409, json={"errorMessage": "Component already exists"})
        component_id = str(uuid.uuid4())
        components.append({"id": component_id, **body})
        location = f"{request.url.scheme}://{request.url.host}/admin/realms/{realm}/components/{component_id}"
        return httpx.Response(201, headers={"Location": location})


@pytest.fixture
def fake_keycloak() -> FakeKeycloak:
    return FakeKeycloak()
