"""Data models for Synology VMM guests and web API responses."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from syno_vm.exceptions import APIError, ValidationError


class SessionState(Enum):
    """Web API session states."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass
class VirtualMachine:
    """A guest as reported by virsh.

    ``status`` is the state string exactly as virsh prints it ("running",
    "shut off", ...). ``cpu`` and ``memory`` stay at 0 when unknown.
    """

    name: str
    status: str = ""
    cpu: int = 0
    memory: int = 0
    storage: str = ""
    ip_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "cpu": self.cpu,
            "memory": self.memory,
            "storage": self.storage,
        }
        if self.ip_address:
            data["ip_address"] = self.ip_address
        return data


@dataclass
class VMConfig:
    """Request to create a new guest."""

    name: str
    template: str = ""
    cpu: int = 2
    memory: int = 2048
    storage: str = ""

    def validate(self) -> None:
        """Validate the creation request.

        Raises:
            ValidationError: If the name is empty or CPU/memory are not positive
        """
        if not self.name:
            raise ValidationError("VM name is required")
        if self.cpu <= 0:
            raise ValidationError("CPU must be greater than 0")
        if self.memory <= 0:
            raise ValidationError("memory must be greater than 0")


@dataclass(frozen=True)
class Template:
    """A VM template known to VMM."""

    name: str
    description: str = ""
    os: str = ""


@dataclass
class APIResponse:
    """Decoded DSM web API response."""

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[int] = None

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "APIResponse":
        error = payload.get("error") or {}
        code = error.get("code") if isinstance(error, dict) else None
        return cls(
            success=bool(payload.get("success", False)),
            data=payload.get("data") or {},
            error_code=int(code) if code is not None else None,
        )

    def raise_for_error(self) -> None:
        """Raise APIError if the call did not succeed."""
        if not self.success:
            code = self.error_code if self.error_code is not None else 0
            raise APIError(f"API call failed with error code {code}", code=code)
