"""Preflight validation: options, privilege and platform, before any mutation."""
from __future__ import annotations

import os
import pwd
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import PlatformError, PrivilegeError, UsageError

_LABEL_RE = re.compile(r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?")


class Workflow(str, Enum):
    """Provisioning variants."""

    WEB = "web"
    REGISTRY = "registry"


@dataclass(frozen=True, slots=True)
class RequiredOption:
    """A mandatory CLI option and how it is named in error messages."""

    attribute: str
    flag: str
    label: str


REQUIRED_OPTIONS: Mapping[Workflow, tuple[RequiredOption, ...]] = {
    Workflow.WEB: (
        RequiredOption("domain", "-d", "DOMAIN"),
        RequiredOption("email", "-e", "EMAIL"),
    ),
    Workflow.REGISTRY: (
        RequiredOption("registry_user", "-u", "REGISTRY_USER"),
        RequiredOption("registry_password", "-p", "REGISTRY_PASSWORD"),
        RequiredOption("domain", "-d", "DOMAIN"),
        RequiredOption("email", "-e", "EMAIL"),
    ),
}


@dataclass(frozen=True, slots=True)
class ProvisionRequest:
    """Validated invocation values; immutable once built."""

    workflow: Workflow
    domain: str
    email: str
    registry_user: str | None = None
    registry_password: str | None = field(default=None, repr=False)

    def to_log_args(self) -> dict[str, object]:
        """Return loggable values (the password is never included)."""
        payload: dict[str, object] = {
            "workflow": self.workflow.value,
            "domain": self.domain,
            "email": self.email,
        }
        if self.registry_user is not None:
            payload["registry_user"] = self.registry_user
        return payload


@dataclass(frozen=True, slots=True)
class PlatformInfo:
    """Distribution identity read from os-release."""

    distro_id: str
    pretty_name: str


def validate_domain(value: str) -> str:
    """Validate and normalise a hostname."""
    normalised = value.strip().lower().rstrip(".")
    if not normalised:
        raise UsageError("Domain must be a non-empty string.")
    if len(normalised) > 253:
        raise UsageError("Domain must be 253 characters or fewer.")
    for label in normalised.split("."):
        if not _LABEL_RE.fullmatch(label):
            raise UsageError(
                f"Invalid domain '{value}': labels may contain letters, numbers and "
                "hyphens, must not start or end with a hyphen and must be 1-63 "
                "characters long."
            )
    return normalised


def build_request(workflow: Workflow, options: Mapping[str, str | None]) -> ProvisionRequest:
    """Build a :class:`ProvisionRequest`, failing on the first missing option."""
    values: dict[str, str] = {}
    for option in REQUIRED_OPTIONS[workflow]:
        raw = options.get(option.attribute)
        if raw is None or not raw.strip():
            raise UsageError(f"Missing required option {option.flag} ({option.label}).")
        values[option.attribute] = raw if option.attribute == "registry_password" else raw.strip()

    return ProvisionRequest(
        workflow=workflow,
        domain=validate_domain(values["domain"]),
        email=values["email"],
        registry_user=values.get("registry_user"),
        registry_password=values.get("registry_password"),
    )


def check_privilege(geteuid: Callable[[], int] = os.geteuid) -> int:
    """Ensure the effective UID is root; return it."""
    uid = geteuid()
    if uid != 0:
        try:
            user: str | None = pwd.getpwuid(uid).pw_name
        except KeyError:
            user = None
        raise PrivilegeError(
            "This command must be run with sudo or as the root user!",
            uid=uid,
            user=user,
        )
    return uid


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an os-release file into a key/value mapping."""
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw_value = line.partition("=")
        values[key.strip()] = raw_value.strip().strip("'\"")
    return values


def detect_platform(path: Path, supported: tuple[str, ...]) -> PlatformInfo:
    """Identify the distribution and ensure it is supported."""
    try:
        values = read_os_release(path)
    except FileNotFoundError as exc:
        raise PlatformError(f"{path} not found. Cannot determine distribution.") from exc
    except OSError as exc:
        raise PlatformError(f"Cannot read {path}: {exc}") from exc

    distro_id = values.get("ID", "").lower()
    if distro_id not in supported:
        names = " or ".join(item.capitalize() for item in supported)
        raise PlatformError(
            f"Unsupported distribution '{distro_id or 'unknown'}'. "
            f"Only {names} are supported."
        )
    return PlatformInfo(
        distro_id=distro_id,
        pretty_name=values.get("PRETTY_NAME", distro_id),
    )


@dataclass(slots=True)
class Preflight:
    """Run every precondition check in order, stopping at the first failure."""

    os_release: Path = Path("/etc/os-release")
    supported_distros: tuple[str, ...] = ("ubuntu", "debian")
    geteuid: Callable[[], int] = os.geteuid

    def validate(
        self,
        workflow: Workflow,
        options: Mapping[str, str | None],
    ) -> tuple[ProvisionRequest, PlatformInfo]:
        """Return the validated request and platform or raise a classified error."""
        request = build_request(workflow, options)
        check_privilege(self.geteuid)
        platform = detect_platform(self.os_release, self.supported_distros)
        return request, platform


__all__ = [
    "PlatformInfo",
    "Preflight",
    "ProvisionRequest",
    "REQUIRED_OPTIONS",
    "RequiredOption",
    "Workflow",
    "build_request",
    "check_privilege",
    "detect_platform",
    "read_os_release",
    "validate_domain",
]
