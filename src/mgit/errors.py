"""Error taxonomy for configuration, validation and repository operations.

Apart from ``EmptyRegistryError`` none of these escape the public entry
points: they are raised where a problem is detected, caught by the loop
that owns the record/remote/branch, and handed to the ``WarningSink``.
"""

from __future__ import annotations

from pathlib import Path


class MgitError(Exception):
    """Base class for all mgit errors."""

    def __init__(
        self,
        message: str,
        *,
        cause: str = "",
        config_path: Path | str | None = None,
        repo_path: Path | str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.config_path = str(config_path) if config_path is not None else None
        self.repo_path = str(repo_path) if repo_path is not None else None

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} ({self.cause})"
        return self.message

    def to_dict(self) -> dict:
        return {
            "kind": type(self).__name__,
            "message": self.message,
            "cause": self.cause,
            "config_path": self.config_path,
            "repo_path": self.repo_path,
        }


class ConfigAccessError(MgitError):
    """A configuration path could not be found or read."""


class ConfigParseError(MgitError):
    """A configuration file is not well-formed."""


class ValidationError(MgitError):
    """A configured repository is missing, inaccessible, invalid or a duplicate."""


class BackendError(MgitError):
    """A local query against a repository failed."""


class FetchError(MgitError):
    """Fetching from a remote failed."""


class FastForwardError(MgitError):
    """A branch could not be fast-forwarded."""


class EmptyRegistryError(MgitError):
    """No repositories survived configuration and validation."""

    def __init__(self, message: str = "no repositories configured", **kwargs):
        super().__init__(message, **kwargs)
