"""Classified errors reported by provisioning stages."""
from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Console prefix used when an error is reported."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"


class ProvisionError(RuntimeError):
    """Base class for every failure that stops a workflow.

    ``detail`` carries captured collaborator output (stderr/stdout); it is
    printed below the classified line and written to the operations log.
    """

    kind = "provision"
    severity = Severity.FATAL

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message

    @property
    def prefix(self) -> str:
        """Return the bracketed console prefix, e.g. ``[FATAL]``."""
        return f"[{self.severity.value}]"


class UsageError(ProvisionError):
    """Missing or malformed invocation options."""

    kind = "usage"
    severity = Severity.ERROR


class PrivilegeError(ProvisionError):
    """The tool is not running as the superuser."""

    kind = "privilege"

    def __init__(self, message: str, *, uid: int, user: str | None = None) -> None:
        super().__init__(message)
        self.uid = uid
        self.user = user


class PlatformError(ProvisionError):
    """The host distribution is unsupported or cannot be determined."""

    kind = "platform"
    severity = Severity.ERROR


class InstallError(ProvisionError):
    """A package or capability could not be installed or verified."""

    kind = "install"


class RenderError(ProvisionError):
    """Template substitution failed."""

    kind = "render"


class WriteError(ProvisionError):
    """Writing or linking the rendered configuration failed."""

    kind = "write"


class ServiceError(ProvisionError):
    """Configuration syntax check or service activation failed."""

    kind = "service"


class CertificateError(ProvisionError):
    """The ACME client exited unsuccessfully."""

    kind = "certificate"


class RegistryError(ProvisionError):
    """Credential creation or registry container launch failed."""

    kind = "registry"


__all__ = [
    "CertificateError",
    "InstallError",
    "PlatformError",
    "PrivilegeError",
    "ProvisionError",
    "RegistryError",
    "RenderError",
    "ServiceError",
    "Severity",
    "UsageError",
    "WriteError",
]
