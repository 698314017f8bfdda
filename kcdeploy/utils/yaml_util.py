"""
YAML loading helpers built on ruamel.yaml.
"""

import logging
import os
from io import StringIO
from typing import Any

from ruamel.yaml import YAML

logger = logging.getLogger(__name__)


def _safe_yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.width = 4096
    return yaml


def load_yaml_from_path(file_path: str) -> dict[str, Any]:
    """
    Load a YAML mapping from a file path.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed YAML data (an empty dict for an empty file)

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the document is not a mapping
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"YAML file not found: {file_path}")

    with open(file_path, encoding="utf-8") as f:
        data = _safe_yaml().load(f)

    logger.debug(f"Loaded YAML from {file_path}")
    return _ensure_mapping(data, file_path)


def load_yaml_from_string(yaml_string: str) -> dict[str, Any]:
    """Load a YAML mapping from a string."""
    data = _safe_yaml().load(StringIO(yaml_string))
    return _ensure_mapping(data, "<string>")


def _ensure_mapping(data: Any, source: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping in {source}, got {type(data).__name__}")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two mappings; values from override win.

    Neither input is modified.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
