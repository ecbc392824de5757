"""Exception hierarchy for syno-vm."""

from typing import Optional


class SynoVMError(Exception):
    """Base exception for syno-vm errors."""

    pass


class ConfigurationError(SynoVMError):
    """Raised when required connection settings are missing or unusable."""

    pass


class ValidationError(SynoVMError):
    """Raised when a VM creation request is invalid."""

    pass


class AuthenticationError(SynoVMError):
    """Raised when no usable credential exists or a login is rejected."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class SessionExpiredError(AuthenticationError):
    """Raised when the web API session is still expired after re-login."""

    pass


class ConnectionError(SynoVMError):
    """Raised when the SSH or HTTP transport cannot reach the NAS."""

    pass


class CommandError(SynoVMError):
    """Raised when a remote command exits non-zero or cannot be started."""

    def __init__(self, command: str, stderr: str = "", exit_status: Optional[int] = None) -> None:
        self.command = command
        self.stderr = stderr
        self.exit_status = exit_status
        message = f"command failed: {command}"
        if exit_status is not None:
            message += f" (exit status {exit_status})"
        if stderr:
            message += f", stderr: {stderr.strip()}"
        super().__init__(message)


class APIError(SynoVMError):
    """Raised when the web API returns an HTTP error or a failure payload."""

    def __init__(
        self, message: str, code: Optional[int] = None, status_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class NotSupportedError(SynoVMError):
    """Raised for operations the SSH transport does not provide."""

    pass
