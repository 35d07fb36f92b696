"""Error types for version lifecycle actions."""

from typing import Optional


class LifecycleError(Exception):
    """Base class for failures returned by coordinator actions."""

    def __init__(self, version_id: Optional[str] = None, message: str = ""):
        self.version_id = version_id
        super().__init__(message or self.default_message())

    def default_message(self) -> str:
        return f"{type(self).__name__}: {self.version_id}"


class UnknownId(LifecycleError):
    def default_message(self) -> str:
        return f"Unknown version {self.version_id!r}"


class AlreadyInstalled(LifecycleError):
    def default_message(self) -> str:
        return f"Version {self.version_id} is already installed"


class NotInstalled(LifecycleError):
    def default_message(self) -> str:
        return f"Version {self.version_id} is not installed"


class OperationInProgress(LifecycleError):
    def default_message(self) -> str:
        return f"Another operation on {self.version_id} is still running"


class ConfirmationRequired(LifecycleError):
    def default_message(self) -> str:
        return f"Uninstalling {self.version_id} requires confirmation"


class BackendUnavailable(LifecycleError):
    def __init__(self, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(None, f"Installer backend unavailable: {cause}")


class _CausedError(LifecycleError):
    """A failure wrapping the backend error that caused it."""

    verb = "operation"

    def __init__(self, version_id: str, cause: BaseException):
        self.cause = cause
        super().__init__(version_id, f"{self.verb} of {version_id} failed: {cause}")


class InstallFailed(_CausedError):
    verb = "Install"


class SelectFailed(_CausedError):
    verb = "Select"


class UninstallFailed(_CausedError):
    verb = "Uninstall"


class LaunchFailed(_CausedError):
    verb = "Launch"


class RevealFailed(_CausedError):
    verb = "Reveal"


class BackendError(Exception):
    """Raised by installer backends."""


class BackendTimeout(BackendError):
    pass


class ChecksumMismatch(BackendError):
    def __init__(self, path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"SHA1 mismatch for {path}: expected {expected}, got {actual}")


class InstallCancelled(BackendError):
    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Install of {version_id} was cancelled")
