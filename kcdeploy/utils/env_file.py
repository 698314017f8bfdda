"""
Helpers for the KEY=value environment file consumed by systemd and docker compose.
"""

import io
import re

from dotenv import dotenv_values

_SAFE_VALUE = re.compile(r"^[A-Za-z0-9_.,:/@+=-]*$")


def quote_env_value(value: object) -> str:
    """
    Quote a value for an EnvironmentFile= line when it needs it.

    Plain values are written as-is. Anything else is wrapped in double quotes
    with backslashes and double quotes escaped, which both systemd and the
    compose env-file parser understand.

    >>> quote_env_value("auth.example.com")
    'auth.example.com'
    >>> quote_env_value('pa ss"word')
    '"pa ss\\\\"word"'
    """
    if isinstance(value, bool):
        text = str(value).lower()
    else:
        text = str(value)
    if _SAFE_VALUE.match(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_env_content(content: str) -> dict[str, str]:
    """Parse env file content into a dict, dropping keys without a value."""
    values = dotenv_values(stream=io.StringIO(content), interpolate=False)
    return {key: value for key, value in values.items() if value is not None}
