"""Managers that provision a single host."""

from .installation_manager import EnvironmentCheckError, InstallationManager, InstallationResult
from .reverse_proxy_manager import ReverseProxyManager

__all__ = ["EnvironmentCheckError", "InstallationManager", "InstallationResult", "ReverseProxyManager"]
