"""Environment interpolation for compose documents.

Compose files may reference variables as ``$VAR``, ``${VAR}``,
``${VAR:-default}``, ``${VAR-default}``, ``${VAR:?error}``, ``${VAR?error}``,
``${VAR:+alternate}`` or ``${VAR+alternate}``; ``$$`` is a literal dollar. The
values come from the process environment merged with the project's
``.env`` file, with the process environment taking precedence.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path

import structlog
from dotenv import dotenv_values

from .exceptions import InterpolationError

logger = structlog.get_logger()

_VARIABLE_PATTERN = re.compile(
    r"\$(?:"
    r"(?P<escaped>\$)"
    r"|\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:?[-?+])(?P<arg>[^}]*))?\}"
    r"|(?P<named>[A-Za-z_][A-Za-z0-9_]*)"
    r")"
)


class EnvironmentResolver:
    """Expands variable references against a fixed set of values."""

    def __init__(self, variables: Mapping[str, str] | None = None):
        self.variables: dict[str, str] = dict(variables or {})

    @classmethod
    def from_process(cls) -> "EnvironmentResolver":
        return cls(os.environ)

    @classmethod
    def for_project(cls, project_dir: str | Path) -> "EnvironmentResolver":
        """Process environment plus ``PWD`` and the project's ``.env`` file."""
        project_dir = Path(project_dir).absolute()
        variables = dict(os.environ)
        variables["PWD"] = str(project_dir)

        env_path = project_dir / ".env"
        if env_path.is_file():
            try:
                file_values = dotenv_values(env_path, interpolate=True)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to read project .env file", path=str(env_path), error=str(e))
                file_values = {}
            for key, value in file_values.items():
                if key not in variables and value is not None:
                    variables[key] = value

        return cls(variables)

    def expand(self, text: str) -> str:
        """Substitute every variable reference in ``text``.

        Unset variables without a default expand to an empty string, as
        docker compose does. With the colon forms an empty value counts as
        unset.

        Raises:
            InterpolationError: If a required (``?``) variable has no value
        """

        def replace(match: re.Match) -> str:
            if match.group("escaped"):
                return "$"

            name = match.group("braced") or match.group("named")
            value = self.variables.get(name)
            op = match.group("op")
            if op:
                missing = not value if op.startswith(":") else value is None
                arg = match.group("arg")
                if op.endswith("-") and missing:
                    return arg
                if op.endswith("?") and missing:
                    raise InterpolationError(arg or f"required variable {name} is missing a value")
                if op.endswith("+"):
                    return "" if missing else arg
            if value is None:
                logger.warning("Variable is not set, defaulting to blank string", variable=name)
                return ""
            return value

        return _VARIABLE_PATTERN.sub(replace, text)

    def __call__(self, text: str) -> str:
        return self.expand(text)
