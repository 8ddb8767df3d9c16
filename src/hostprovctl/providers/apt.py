"""Package installation through apt-get."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .commands import CommandResult, CommandRunner, SubprocessRunner

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptError(RuntimeError):
    """Raised when an apt-get invocation fails."""

    def __init__(self, message: str, *, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(slots=True)
class AptProvider:
    """Refresh, upgrade and install Debian packages non-interactively."""

    apt_bin: str = "apt-get"
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def update(self) -> CommandResult:
        """Refresh the package index."""
        return self._apt(["update"])

    def upgrade(self) -> CommandResult:
        """Upgrade installed packages."""
        return self._apt(["upgrade", "-y"])

    def install(self, packages: Sequence[str]) -> CommandResult:
        """Install *packages*; already-installed packages are left as is."""
        if not packages:
            raise AptError("No packages requested for installation.")
        return self._apt(["install", "-y", *packages])

    def _apt(self, args: Sequence[str]) -> CommandResult:
        result = self.runner.run([self.apt_bin, *args], env=APT_ENV)
        if not result.ok:
            raise AptError(
                f"{self.apt_bin} {' '.join(args)} failed (exit {result.returncode})",
                result=result,
            )
        return result


__all__ = ["APT_ENV", "AptError", "AptProvider"]
