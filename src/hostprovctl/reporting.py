"""Classified console messages: ``[INFO]`` to stdout, the rest to stderr."""
from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console
from rich.text import Text

from .errors import PrivilegeError, ProvisionError, Severity

_STYLES = {
    Severity.INFO: "cyan",
    Severity.WARN: "yellow",
    Severity.ERROR: "red",
    Severity.FATAL: "bold red",
}


@dataclass(slots=True)
class Reporter:
    """Print single-line progress and failure messages."""

    out: Console = field(default_factory=lambda: Console(soft_wrap=True))
    err: Console = field(default_factory=lambda: Console(stderr=True, soft_wrap=True))

    def info(self, message: str) -> None:
        """Report progress."""
        self._emit(Severity.INFO, message)

    def warn(self, message: str) -> None:
        """Report a non-fatal condition."""
        self._emit(Severity.WARN, message)

    def error(self, message: str) -> None:
        """Report an input or environment error."""
        self._emit(Severity.ERROR, message)

    def fatal(self, message: str) -> None:
        """Report a failure that stopped the workflow."""
        self._emit(Severity.FATAL, message)

    def failure(self, error: ProvisionError) -> None:
        """Report *error* with its own classification."""
        if isinstance(error, PrivilegeError):
            identity = f"{error.uid} ({error.user})" if error.user else str(error.uid)
            self.info(f"UID: {identity}")
        self._emit(error.severity, error.message)
        if error.detail:
            self.err.print(Text(error.detail.rstrip()), highlight=False)

    def _emit(self, severity: Severity, message: str) -> None:
        console = self.out if severity is Severity.INFO else self.err
        console.print(
            Text.assemble((f"[{severity.value}]", _STYLES[severity]), " ", message),
            highlight=False,
        )


__all__ = ["Reporter"]
