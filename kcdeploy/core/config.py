import logging
import os

from pydantic_settings import BaseSettings

# Initialize logging early to ensure it's available during config loading
from kcdeploy.core.early_logging import initialize_logging  # noqa: F401
from kcdeploy.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

PROJECT_NAME: str = "kcdeploy"
VERSION: str = "0.1.0"
PROJECT_DESCRIPTION: str = "Keycloak + PostgreSQL provisioning with LDAP federation"

BASE_ENV_FILE = "kcdeploy.env"
SYSTEM_ENV_FILE = "/etc/kcdeploy/kcdeploy.env"

_env_files_cache: list[str] | None = None


def _get_env_files() -> list[str]:
    """
    Get list of environment files to load in order of precedence.

    Configuration hierarchy (process environment takes highest precedence):
    1. Process environment variables - HIGHEST PRECEDENCE
    2. System-wide file (/etc/kcdeploy/kcdeploy.env or KCDEPLOY_CONFIG_ENV_FILE)
    3. kcdeploy.env.{ENVIRONMENT} for every entry in the comma separated ENVIRONMENT variable
    4. kcdeploy.env in the working directory - LOWEST PRECEDENCE

    Note that these files configure the tool itself. They are unrelated to the
    .env file the installer writes for the Keycloak service.

    Returns:
        List of environment file paths that exist
    """
    global _env_files_cache

    if _env_files_cache is not None:
        return _env_files_cache
    env_files = []

    if os.path.exists(BASE_ENV_FILE):
        env_files.append(BASE_ENV_FILE)
        logger.debug(f"Found base env file: {BASE_ENV_FILE}")

    environment_var = os.environ.get("ENVIRONMENT", "")
    environments = [env.strip() for env in environment_var.split(",") if env.strip()]
    for environment in environments:
        env_specific = f"{BASE_ENV_FILE}.{environment}"
        if os.path.exists(env_specific):
            env_files.append(env_specific)
            logger.debug(f"Found environment-specific env file: {env_specific}")
        else:
            logger.warning(f"Environment file missing: {env_specific} (ENVIRONMENT={environment_var})")

    system_env_file = os.environ.get("KCDEPLOY_CONFIG_ENV_FILE", SYSTEM_ENV_FILE)
    if system_env_file and os.path.exists(system_env_file):
        env_files.append(system_env_file)
        logger.debug(f"System env file found: {system_env_file}")

    logger.debug(f"Configuration loading order: {env_files}")

    _env_files_cache = env_files
    return env_files


class Settings(BaseSettings):
    model_config = {"env_file": _get_env_files(), "env_file_encoding": "utf-8", "extra": "ignore"}

    ENVIRONMENT: str = ""

    # Defaults for the installer flags
    DEFAULT_DOMAIN: str = "auth.example.com"
    DEFAULT_LISTEN_ADDRESS: str = "127.0.0.1"
    DEFAULT_HTTP_PORT: str = "8080"
    DEFAULT_ADMIN_USER: str = "admin"
    DEFAULT_BEHIND_PROXY: bool = True

    # Installation layout
    INSTALL_DIR: str = "/opt/keycloak"
    SYSTEMD_UNIT_DIR: str = "/etc/systemd/system"
    SERVICE_NAME: str = "keycloak"
    INFO_FILE: str = "/root/keycloak-info.txt"

    # Container images
    KEYCLOAK_IMAGE: str = "quay.io/keycloak/keycloak:latest"
    POSTGRES_IMAGE: str = "postgres:15-alpine"
    KEYCLOAK_CONTAINER_NAME: str = "keycloak"
    POSTGRES_CONTAINER_NAME: str = "keycloak-postgres"

    # Database identity (the password is generated per installation)
    DB_USER: str = "keycloak"
    DB_NAME: str = "keycloak"

    # Docker bootstrap
    DOCKER_INSTALL_URL: str = "https://get.docker.com"

    # Readiness polling (seconds)
    READINESS_TIMEOUT: float = 300.0
    READINESS_BACKOFF_MIN: float = 2.0
    READINESS_BACKOFF_MAX: float = 30.0
    HEALTH_PATH: str = "/realms/master/.well-known/openid-configuration"
    # Must differ from the HTTP port; Keycloak serves /health on this interface
    KEYCLOAK_MANAGEMENT_PORT: str = "9001"

    # Keycloak admin API
    KEYCLOAK_HTTP_TIMEOUT: float = 30.0
    KEYCLOAK_VERIFY_TLS: bool = True

    # Fleet
    FLEET_FORKS: int = 5
    SSH_OPTIONS: str = "-oBatchMode=yes"
    SSH_TIMEOUT: float = 600.0

    # Logging configuration
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "kcdeploy.log"
    LOG_LEVEL: str = "INFO"


def _get_settings() -> Settings:
    settings = Settings()

    setup_logging(log_to_file=settings.LOG_TO_FILE, log_file_path=settings.LOG_FILE_PATH, log_level=settings.LOG_LEVEL)

    logger.debug(f"Settings loaded: INSTALL_DIR={settings.INSTALL_DIR}, KEYCLOAK_IMAGE={settings.KEYCLOAK_IMAGE}")
    return settings


settings = _get_settings()
