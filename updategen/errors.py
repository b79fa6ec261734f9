from __future__ import annotations

from collections.abc import Sequence


class UpdateGenError(Exception):
    """Base class for errors raised by updategen."""


class ValidationError(UpdateGenError):
    """Invalid command input (dates, versions). Raised before any side effect."""


class ExternalToolError(UpdateGenError):
    """An external program (git, mysqldump) failed or could not be run."""

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        *,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class StagingError(UpdateGenError):
    """The staging directory could not be recreated."""


class ArchiveError(UpdateGenError):
    """A zip archive could not be opened for writing."""


class DatabaseError(UpdateGenError):
    """Table truncation failed."""


class MissingFileWarning(UserWarning):
    """A configured or discovered file was absent when it was needed."""
