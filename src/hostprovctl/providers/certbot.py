"""Certificate issuance through certbot's nginx plugin."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .commands import CommandResult, CommandRunner, SubprocessRunner


class CertbotError(RuntimeError):
    """Raised when certbot exits unsuccessfully."""

    def __init__(self, message: str, *, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(frozen=True, slots=True)
class CertificatePaths:
    """Well-known locations certbot writes for a domain."""

    fullchain: Path
    privkey: Path


@dataclass(slots=True)
class CertbotProvider:
    """Obtain and install certificates; certbot owns all certificate files."""

    certbot_bin: str = "certbot"
    live_dir: Path = Path("/etc/letsencrypt/live")
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def obtain(self, domain: str, email: str) -> CommandResult:
        """Issue a certificate for *domain* and wire it into nginx."""
        args = [
            self.certbot_bin,
            "--nginx",
            "--non-interactive",
            "--agree-tos",
            "--redirect",
            "-d",
            domain,
            "--email",
            email,
        ]
        result = self.runner.run(args)
        if not result.ok:
            raise CertbotError(
                f"certbot failed for {domain} (exit {result.returncode})",
                result=result,
            )
        return result

    def paths(self, domain: str) -> CertificatePaths:
        """Return the live certificate paths for *domain*."""
        base = self.live_dir / domain
        return CertificatePaths(
            fullchain=base / "fullchain.pem",
            privkey=base / "privkey.pem",
        )


__all__ = ["CertbotError", "CertbotProvider", "CertificatePaths"]
