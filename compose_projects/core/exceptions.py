"""Core exceptions for compose project operations."""


class ComposeProjectsError(Exception):
    """Base exception for compose project operations."""


class PathTranslationError(ComposeProjectsError):
    """Container-to-host path translation failed."""


class IncludeError(ComposeProjectsError):
    """Base exception for include file handling."""


class IncludeParseError(IncludeError):
    """Compose file or include directive could not be read or decoded."""


class IncludeValidationError(IncludeError):
    """Include reference or project directory is invalid."""


class WriteAccessDeniedError(IncludeValidationError):
    """Resolved write target escapes the project directory."""


class IncludeWriteError(IncludeError):
    """Creating, writing or deleting an include file failed."""


class ComposeCommandError(ComposeProjectsError):
    """Docker compose command execution failed."""


class ComposeEngineError(ComposeProjectsError):
    """Compose engine operation (up, ps, down, ...) failed."""


class InterpolationError(ComposeProjectsError):
    """A required variable reference has no value."""
