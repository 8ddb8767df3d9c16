"""Provider interfaces for hostprovctl."""
from __future__ import annotations

from .apt import AptError, AptProvider
from .certbot import CertbotError, CertbotProvider, CertificatePaths
from .commands import CommandResult, CommandRunner, RecordingRunner, SubprocessRunner
from .docker import DockerError, DockerProvider, RegistryLaunch
from .nginx import NginxError, NginxProvider, NginxRenderResult
from .systemd import SystemdError, SystemdProvider

__all__ = [
    "AptError",
    "AptProvider",
    "CertbotError",
    "CertbotProvider",
    "CertificatePaths",
    "CommandResult",
    "CommandRunner",
    "DockerError",
    "DockerProvider",
    "NginxError",
    "NginxProvider",
    "NginxRenderResult",
    "RecordingRunner",
    "RegistryLaunch",
    "SubprocessRunner",
    "SystemdError",
    "SystemdProvider",
]
