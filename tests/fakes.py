"""Scripted collaborators and builders shared by the test suite."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from hostprovctl.cli import RuntimeContext, build_runtime
from hostprovctl.config import AppConfig
from hostprovctl.pipeline import StageContext
from hostprovctl.preflight import Preflight, ProvisionRequest, Workflow
from hostprovctl.providers import CommandResult
from hostprovctl.reporting import Reporter

UBUNTU_OS_RELEASE = (
    'PRETTY_NAME="Ubuntu 24.04 LTS"\n'
    'NAME="Ubuntu"\n'
    'VERSION_ID="24.04"\n'
    "ID=ubuntu\n"
    "ID_LIKE=debian\n"
)

@dataclass(slots=True)
class FakeCall:
    """One command observed by :class:`FakeRunner`."""

    args: tuple[str, ...]
    input: str | None = None
    env: Mapping[str, str] | None = None

@dataclass(slots=True)
class _Rule:
    prefix: tuple[str, ...]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Callable[[FakeCall], None] | None = None

@dataclass(slots=True)
class FakeRunner:
    """Scripted stand-in for :class:`hostprovctl.providers.CommandRunner`.

    Commands succeed with empty output unless a rule registered through
    :meth:`respond` matches the start of the argument list. The most recently
    registered matching rule wins.
    """

    available: set[str] = field(
        default_factory=lambda: {"apt-get", "nginx", "certbot", "systemctl"}
    )
    calls: list[FakeCall] = field(default_factory=list)
    rules: list[_Rule] = field(default_factory=list)

    def respond(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Callable[[FakeCall], None] | None = None,
    ) -> None:
        """Register the outcome for commands starting with *prefix*."""
        self.rules.append(
            _Rule(
                prefix=tuple(prefix),
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
                effect=effect,
            )
        )

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Record the call and return the scripted result."""
        call = FakeCall(args=tuple(str(arg) for arg in args), input=input, env=env)
        self.calls.append(call)
        for rule in reversed(self.rules):
            if call.args[: len(rule.prefix)] == rule.prefix:
                if rule.effect is not None:
                    rule.effect(call)
                return CommandResult(
                    args=call.args,
                    returncode=rule.returncode,
                    stdout=rule.stdout,
                    stderr=rule.stderr,
                )
        return CommandResult(args=call.args, returncode=0)

    def which(self, command: str) -> str | None:
        """Resolve *command* when it is marked available."""
        if command in self.available:
            return f"/usr/bin/{command}"
        return None

    def commands(self) -> list[tuple[str, ...]]:
        """Return the argument tuples of every call so far."""
        return [call.args for call in self.calls]

    def ran(self, *prefix: str) -> bool:
        """Return True when a command starting with *prefix* was run."""
        return any(args[: len(prefix)] == prefix for args in self.commands())

    def index_of(self, *prefix: str) -> int:
        """Return the position of the first command starting with *prefix*."""
        for index, args in enumerate(self.commands()):
            if args[: len(prefix)] == prefix:
                return index
        raise AssertionError(f"{' '.join(prefix)} was never run")

def make_runtime(
    config: AppConfig,
    runner: FakeRunner,
    *,
    uid: int = 0,
) -> RuntimeContext:
    """Build a runtime wired to *runner* that reports effective UID *uid*."""
    preflight = Preflight(
        os_release=config.os_release,
        supported_distros=config.supported_distros,
        geteuid=lambda: uid,
    )
    return build_runtime(config, runner=runner, preflight=preflight)

def make_stage_context(
    runtime: RuntimeContext,
    *,
    workflow: Workflow = Workflow.WEB,
    domain: str = "example.com",
    email: str = "admin@example.com",
    registry_user: str | None = None,
    registry_password: str | None = None,
) -> StageContext:
    """Return a stage context for a validated request."""
    request = ProvisionRequest(
        workflow=workflow,
        domain=domain,
        email=email,
        registry_user=registry_user,
        registry_password=registry_password,
    )
    return StageContext(
        request=request,
        config=runtime.config,
        collaborators=runtime.collaborators,
        reporter=Reporter(),
    )
