"""Exception hierarchy shared by the addon manager."""
from typing import Optional


class LlamError(Exception):
    """Base class for all addon manager failures."""
    pass


class GitError(LlamError):
    """Exception raised for git operation failures."""

    def __init__(
        self,
        message: str,
        command: Optional[list[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr


class ManifestError(LlamError):
    """The manifest document is malformed or could not be serialized."""
    pass


class SettingsError(LlamError):
    """The settings file is invalid."""
    pass


class ContextError(LlamError):
    """Attaches a description of the failed operation to an inner error."""

    def __init__(self, context: str, error: BaseException):
        super().__init__(f"{context}: {error}")
        self.context = context
        self.error = error
        self.__cause__ = error
