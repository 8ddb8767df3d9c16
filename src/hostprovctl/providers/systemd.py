"""Systemd provider for controlling host services."""
from __future__ import annotations

from dataclasses import dataclass, field

from .commands import CommandResult, CommandRunner, SubprocessRunner


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Thin wrapper around ``systemctl`` for a named service."""

    systemctl_bin: str = "systemctl"
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def is_active(self, service: str) -> bool:
        """Return True when *service* is currently active."""
        result = self._systemctl("is-active", "--quiet", service, check=False)
        return result.ok

    def start(self, service: str) -> CommandResult:
        """Start *service*."""
        return self._systemctl("start", service)

    def reload(self, service: str) -> CommandResult:
        """Reload *service* without dropping connections."""
        return self._systemctl("reload", service)

    # ------------------------------------------------------------------
    def _systemctl(self, command: str, *args: str, check: bool = True) -> CommandResult:
        result = self.runner.run([self.systemctl_bin, command, *args])
        if check and not result.ok:
            raise SystemdError(
                f"{self.systemctl_bin} {command} failed "
                f"(exit {result.returncode}): {result.diagnostic}"
            )
        return result


__all__ = ["SystemdError", "SystemdProvider"]
