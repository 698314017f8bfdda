"""
Tests for rendering the installation artifacts.
"""

from io import StringIO

import pytest
from ruamel.yaml import YAML

from kcdeploy.core.parameters import GeneratedSecrets, InstallationParameters, InstallationPaths, ReverseProxyParameters
from kcdeploy.generation.renderer import ConfigRenderer
from kcdeploy.utils.env_file import parse_env_content


@pytest.fixture
def renderer(settings):
    return ConfigRenderer(settings)


@pytest.fixture
def paths(settings):
    return InstallationPaths.from_settings(settings)


@pytest.fixture
def secrets():
    return GeneratedSecrets(db_password="DbSecret123", admin_password="Admin Pass\"1", admin_password_generated=False)


def test_env_file_reflects_parameters(renderer, settings, paths, secrets):
    params = InstallationParameters.from_settings(
        settings, domain="auth.test.local", listen_address="0.0.0.0", http_port="9000", behind_proxy=False
    )

    values = parse_env_content(renderer.render_env_file(params, paths, secrets))

    assert values["KEYCLOAK_DOMAIN"] == "auth.test.local"
    assert values["KEYCLOAK_URL"] == "http://auth.test.local:9000"
    assert values["LISTEN_ADDRESS"] == "0.0.0.0"
    assert values["HTTP_PORT"] == "9000"
    assert values["BEHIND_REVERSE_PROXY"] == "false"
    assert values["KC_HOSTNAME"] == "auth.test.local"
    assert values["PROXY_ADDRESS_FORWARDING"] == "true"


def test_env_file_contains_credentials(renderer, settings, paths, secrets):
    params = InstallationParameters.from_settings(settings)

    values = parse_env_content(renderer.render_env_file(params, paths, secrets))

    assert values["KEYCLOAK_ADMIN"] == "admin"
    assert values["KEYCLOAK_ADMIN_PASSWORD"] == 'Admin Pass"1'
    assert values["DB_PASSWORD"] == values["POSTGRES_PASSWORD"] == "DbSecret123"
    assert values["DB_USER"] == values["POSTGRES_USER"] == settings.DB_USER
    assert values["DB_DATABASE"] == values["POSTGRES_DB"] == settings.DB_NAME
    assert values["BEHIND_REVERSE_PROXY"] == "true"
    assert values["KEYCLOAK_URL"] == "https://auth.example.com"


def test_compose_file_defines_both_services(renderer, settings):
    compose = YAML(typ="safe").load(StringIO(renderer.render_compose_file()))

    postgres = compose["services"]["postgres"]
    keycloak = compose["services"]["keycloak"]

    assert postgres["image"] == settings.POSTGRES_IMAGE
    assert "pg_isready" in postgres["healthcheck"]["test"][1]
    assert keycloak["image"] == settings.KEYCLOAK_IMAGE
    assert keycloak["command"] == ["start"]
    assert keycloak["depends_on"]["postgres"]["condition"] == "service_healthy"
    assert keycloak["ports"] == ["${LISTEN_ADDRESS}:${HTTP_PORT}:${HTTP_PORT}"]
    assert "/health/ready" in keycloak["healthcheck"]["test"][1]
    assert f"/dev/tcp/127.0.0.1/{settings.KEYCLOAK_MANAGEMENT_PORT}" in keycloak["healthcheck"]["test"][1]
    assert keycloak["environment"]["KC_HTTP_MANAGEMENT_PORT"] == settings.KEYCLOAK_MANAGEMENT_PORT
    assert compose["networks"]["keycloak-network"]["driver"] == "bridge"


def test_unit_file_delegates_to_docker_compose(renderer, paths):
    unit = renderer.render_unit_file(paths)

    assert "Type=oneshot" in unit
    assert "RemainAfterExit=yes" in unit
    assert f"WorkingDirectory={paths.install_dir}" in unit
    assert f"EnvironmentFile={paths.env_file}" in unit
    assert "ExecStart=/usr/bin/docker compose up -d" in unit
    assert "ExecStop=/usr/bin/docker compose down" in unit
    assert "WantedBy=multi-user.target" in unit


def test_info_file_sections(renderer, settings, paths, secrets):
    params = InstallationParameters.from_settings(settings, behind_proxy=True)

    info = renderer.render_info_file(params, paths, secrets)

    for section in ("ACCESS INFORMATION", "ADMIN CREDENTIALS", "DATABASE CREDENTIALS", "SYSTEM INFORMATION",
                    "ENDPOINTS", "FIREWALL REQUIREMENTS", "NEXT STEPS", "COMMON TASKS", "TROUBLESHOOTING",
                    "BACKUP", "DOCUMENTATION"):
        assert section in info
    assert "REVERSE PROXY CONFIGURATION" in info
    assert "Admin Console: https://auth.example.com/admin" in info
    assert "Password: DbSecret123" in info


def test_info_file_without_proxy(renderer, settings, paths, secrets):
    params = InstallationParameters.from_settings(settings, behind_proxy=False, http_port="9000")

    info = renderer.render_info_file(params, paths, secrets)

    assert "REVERSE PROXY CONFIGURATION" not in info
    assert "Admin Console: http://auth.example.com:9000/admin" in info
    assert "Consider setting up HTTPS with reverse proxy" in info


def test_status_report_without_env_file(renderer, paths):
    report = renderer.render_status(paths, {}, service_active=False, container_health=None)

    assert "NOT active" in report
    assert "is missing" in report


def test_nginx_site_proxies_to_keycloak(renderer, settings):
    params = InstallationParameters.from_settings(settings, listen_address="0.0.0.0", http_port="8081")
    proxy = ReverseProxyParameters(enabled=True, server_name="sso.example.com")

    site = renderer.render_nginx_site(params, proxy)

    assert "server_name sso.example.com;" in site
    assert "proxy_pass http://127.0.0.1:8081;" in site
    assert "X-Forwarded-Proto" in site


def test_missing_variable_raises_runtime_error(renderer):
    """Test that templates fail loudly instead of rendering empty values."""
    with pytest.raises(RuntimeError, match="status.txt.jinja"):
        renderer.render("status.txt.jinja", {})
