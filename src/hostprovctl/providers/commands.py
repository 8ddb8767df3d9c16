"""Process execution shared by every provider."""
from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Exit status and captured output of an external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Return ``True`` when the command exited with status zero."""
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """Return the most useful captured output for error messages."""
        return (self.stderr or self.stdout or "no output").strip()

    def describe(self) -> str:
        """Return a one-line summary suitable for operation log steps."""
        return f"{' '.join(self.args)} (exit {self.returncode})"


class CommandRunner(Protocol):
    """Interface used by providers to run collaborator CLIs."""

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run *args* synchronously and return its captured result."""
        ...

    def which(self, command: str) -> str | None:
        """Return the resolved path of *command* or ``None``."""
        ...


class SubprocessRunner:
    """Run commands with :mod:`subprocess`, capturing all output."""

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run *args*; a missing executable is reported as exit status 127."""
        command = [str(arg) for arg in args]
        env_vars: dict[str, str] | None = None
        if env:
            env_vars = os.environ.copy()
            env_vars.update(env)
        try:
            result = subprocess.run(  # noqa: S603
                command,
                input=input,
                capture_output=True,
                text=True,
                check=False,
                env=env_vars,
            )
        except FileNotFoundError as exc:
            return CommandResult(args=tuple(command), returncode=127, stderr=str(exc))
        return CommandResult(
            args=tuple(command),
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    def which(self, command: str) -> str | None:
        """Resolve *command* on ``PATH`` (or check an explicit path)."""
        path = Path(command)
        if path.is_absolute():
            return str(path) if path.exists() and os.access(path, os.X_OK) else None
        return shutil.which(command)


class RecordingRunner:
    """Delegate to another runner and remember every result it returns."""

    def __init__(self, inner: CommandRunner) -> None:
        """Wrap *inner*."""
        self._inner = inner
        self._results: list[CommandResult] = []

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run through the wrapped runner and record the result."""
        result = self._inner.run(args, input=input, env=env)
        self._results.append(result)
        return result

    def which(self, command: str) -> str | None:
        """Resolve through the wrapped runner."""
        return self._inner.which(command)

    def drain(self) -> tuple[CommandResult, ...]:
        """Return and forget the results recorded so far."""
        results = tuple(self._results)
        self._results.clear()
        return results


__all__ = ["CommandResult", "CommandRunner", "RecordingRunner", "SubprocessRunner"]
