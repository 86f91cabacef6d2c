"""
Error types raised by the launcher backend.

Subprocess exit codes are normally returned as data (see `commands.CommandResult`)
and classified by the caller. Only the conditions below escalate as exceptions.
"""
from typing import Optional


INSTALL_FAILED_MARKER = "NPM_INSTALL_FAILED::"


class LauncherError(Exception):
    """Base class for launcher errors shown to the UI."""


class ConfigurationError(LauncherError):
    """A configured path is missing or invalid. Never retried automatically."""


class LaunchError(LauncherError):
    """An external tool could not be started at all."""


class SubprocessFailure(LauncherError):
    """A tool ran and exited non-zero. Carries the captured result."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result

    @property
    def output(self) -> str:
        return self.result.output if self.result is not None else ""


class InstallFailedError(SubprocessFailure):
    """
    Dependency install exited non-zero.

    The message always starts with INSTALL_FAILED_MARKER so the UI can offer
    "retry install" or "continue without reinstalling".
    """

    def __init__(self, details: str = "", result=None):
        details = (details or "").strip()
        if details:
            message = f"{INSTALL_FAILED_MARKER}npm install failed. Details: {details}"
        else:
            message = f"{INSTALL_FAILED_MARKER}npm install failed. Check logs for details."
        super().__init__(message, result)


class ConflictError(LauncherError):
    """A merge or stash conflict that needs a user decision."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class HealthTimeoutError(LauncherError):
    """The health probe ran out of attempts."""

    def __init__(self, url: str, message: Optional[str] = None):
        super().__init__(
            message or f"Failed to verify server health at {url}. Please check the logs."
        )
        self.url = url


class StartInProgressError(LauncherError):
    """A server start is already running for this launcher."""
