"""
Tests for the nginx and certbot reverse proxy setup.
"""

from pathlib import Path

import pytest

from kcdeploy.core.parameters import InstallationParameters, ReverseProxyParameters
from kcdeploy.generation.renderer import ConfigRenderer
from kcdeploy.manager.reverse_proxy_manager import ReverseProxyManager


@pytest.fixture
def proxy_dirs(tmp_path):
    available = tmp_path / "nginx" / "sites-available"
    enabled = tmp_path / "nginx" / "sites-enabled"
    enabled.mkdir(parents=True)
    return {
        "sites_available_dir": str(available),
        "sites_enabled_dir": str(enabled),
        "letsencrypt_live_dir": str(tmp_path / "letsencrypt" / "live"),
    }


def _manager(host, settings, **proxy_values):
    params = InstallationParameters.from_settings(settings, domain="auth.example.com")
    proxy = ReverseProxyParameters(**proxy_values)
    return ReverseProxyManager(host, ConfigRenderer(settings), params, proxy)


@pytest.mark.asyncio
async def test_disabled_proxy_does_nothing(host, settings):
    configured = await _manager(host, settings).configure()

    assert configured is False
    assert host.commands == []


@pytest.mark.asyncio
async def test_configure_proxy_and_certificate(host, settings, proxy_dirs):
    manager = _manager(host, settings, enabled=True, certbot_email="ops@example.com", **proxy_dirs)
    host.respond(["sh", "-c", "command -v nginx"], returncode=1)

    assert await manager.configure() is True

    assert host.ran("apt-get", "update")
    assert host.ran("env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", "nginx", "certbot")
    assert host.ran("nginx", "-t")
    assert host.ran("systemctl", "reload", "nginx")
    assert [
        "certbot", "--nginx", "-d", "auth.example.com", "--non-interactive", "--agree-tos",
        "-m", "ops@example.com", "--redirect",
    ] in host.commands

    site = Path(proxy_dirs["sites_available_dir"]) / "keycloak"
    link = Path(proxy_dirs["sites_enabled_dir"]) / "keycloak"
    assert "server_name auth.example.com;" in site.read_text()
    assert link.is_symlink()

    # nginx must be validated before it is reloaded, and before certbot edits the site
    order = [command[0] if command[0] != "systemctl" else "reload" for command in host.commands]
    assert order.index("nginx") < order.index("reload") < order.index("certbot")


@pytest.mark.asyncio
async def test_staging_certificate(host, settings, proxy_dirs):
    manager = _manager(host, settings, enabled=True, certbot_email="ops@example.com", certbot_staging=True, **proxy_dirs)

    await manager.configure()

    certbot = next(command for command in host.commands if command[0] == "certbot")
    assert "--staging" in certbot


@pytest.mark.asyncio
async def test_certificate_request_can_be_disabled(host, settings, proxy_dirs):
    manager = _manager(host, settings, enabled=True, request_certificate=False, **proxy_dirs)

    await manager.configure()

    assert not host.ran("certbot")


@pytest.mark.asyncio
async def test_certificate_requires_email(host, settings, proxy_dirs):
    manager = _manager(host, settings, enabled=True, **proxy_dirs)

    with pytest.raises(ValueError, match="certbot_email"):
        await manager.configure()


@pytest.mark.asyncio
async def test_installed_packages_are_not_reinstalled(host, settings, proxy_dirs):
    await _manager(host, settings, enabled=True, request_certificate=False, **proxy_dirs).configure()

    assert host.ran("sh", "-c", "command -v nginx")
    assert not host.ran("apt-get")


@pytest.mark.asyncio
async def test_unchanged_site_is_not_rewritten(host, settings, proxy_dirs):
    manager = _manager(host, settings, enabled=True, request_certificate=False, **proxy_dirs)
    await manager.configure()

    host.commands.clear()
    host.file_operations.clear()
    await manager.configure()

    assert host.file_operations == []
    assert host.mutating_commands() == []
    assert not host.ran("nginx", "-t")


@pytest.mark.asyncio
async def test_existing_certificate_keeps_site_and_skips_certbot(host, settings, proxy_dirs):
    """Test that a site rewritten by certbot for HTTPS is left alone."""
    manager = _manager(host, settings, enabled=True, certbot_email="ops@example.com", **proxy_dirs)
    site = Path(proxy_dirs["sites_available_dir"]) / "keycloak"
    site.parent.mkdir(parents=True)
    site.write_text("server {\n    listen 443 ssl; # managed by Certbot\n}\n")
    (Path(proxy_dirs["letsencrypt_live_dir"]) / "auth.example.com").mkdir(parents=True)

    assert await manager.configure() is True

    assert "managed by Certbot" in site.read_text()
    assert host.file_operations == []
    assert host.mutating_commands() == []
    assert not host.ran("certbot")
