"""Environment variable utilities for export configs.

Expands ``${VAR_NAME}`` / ``$VAR_NAME`` references in config values (for
example ``target: ${EXPORT_DIR}/people.ldif``) and loads ``.env`` files
with python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_values", "load_env_file"]

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load a .env file; with no path, search upwards from the cwd.

    Returns:
        True if a .env file was found and loaded
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variables in a string.

    Unset variables are left as written unless ``strict`` is set, in which
    case a KeyError is raised.

    Example:
        >>> os.environ["EXPORT_DIR"] = "/srv/exports"
        >>> expand_env_vars("${EXPORT_DIR}/people.ldif")
        '/srv/exports/people.ldif'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_values(value: Any, *, strict: bool = False) -> Any:
    """Recursively expand env vars in strings nested in dicts and lists."""
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return {k: expand_values(v, strict=strict) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_values(item, strict=strict) for item in value]
    return value
