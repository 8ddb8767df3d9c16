"""Stage results and the fail-fast stage runner."""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from .config import AppConfig
from .errors import ProvisionError
from .preflight import ProvisionRequest, Workflow
from .providers import (
    AptProvider,
    CertbotProvider,
    CommandResult,
    DockerProvider,
    NginxProvider,
    RecordingRunner,
    SystemdProvider,
)
from .reporting import Reporter


@dataclass(frozen=True, slots=True)
class StageSucceeded:
    """A stage that completed."""

    stage: str
    message: str
    steps: tuple[CommandResult, ...] = ()
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class StageFailed:
    """A stage that stopped the workflow."""

    stage: str
    error: ProvisionError
    steps: tuple[CommandResult, ...] = ()
    ok: Literal[False] = False


StageResult = StageSucceeded | StageFailed


@dataclass(slots=True)
class Collaborators:
    """Providers for every external CLI the stages drive."""

    apt: AptProvider
    nginx: NginxProvider
    systemd: SystemdProvider
    certbot: CertbotProvider
    docker: DockerProvider
    recorder: RecordingRunner | None = None

    def drain_steps(self) -> tuple[CommandResult, ...]:
        """Return the commands run since the last call."""
        if self.recorder is None:
            return ()
        return self.recorder.drain()


@dataclass(slots=True)
class StageContext:
    """Inputs shared by every stage of one run."""

    request: ProvisionRequest
    config: AppConfig
    collaborators: Collaborators
    reporter: Reporter


@dataclass(frozen=True, slots=True)
class StageDefinition:
    """A named stage.

    ``run`` returns a success message or raises a
    :class:`~hostprovctl.errors.ProvisionError`; :func:`run_stage` turns
    either outcome into a :data:`StageResult`.
    """

    name: str
    run: Callable[[StageContext], str]


@dataclass(frozen=True, slots=True)
class WorkflowReport:
    """Ordered stage results of one workflow run."""

    workflow: Workflow
    results: tuple[StageResult, ...]
    request: ProvisionRequest | None = None

    @property
    def ok(self) -> bool:
        """Return True when every stage succeeded."""
        return all(result.ok for result in self.results)

    @property
    def failure(self) -> StageFailed | None:
        """Return the stage that stopped the run, if any."""
        for result in self.results:
            if isinstance(result, StageFailed):
                return result
        return None


def run_stage(stage: StageDefinition, context: StageContext) -> StageResult:
    """Run *stage* and classify its outcome."""
    try:
        message = stage.run(context)
    except ProvisionError as exc:
        return StageFailed(
            stage=stage.name,
            error=exc,
            steps=context.collaborators.drain_steps(),
        )
    return StageSucceeded(
        stage=stage.name,
        message=message,
        steps=context.collaborators.drain_steps(),
    )


def run_pipeline(
    stages: Sequence[StageDefinition],
    context: StageContext,
) -> list[StageResult]:
    """Run *stages* in order, stopping after the first failure."""
    results: list[StageResult] = []
    for stage in stages:
        result = run_stage(stage, context)
        results.append(result)
        if isinstance(result, StageFailed):
            break
    return results


__all__ = [
    "Collaborators",
    "StageContext",
    "StageDefinition",
    "StageFailed",
    "StageResult",
    "StageSucceeded",
    "WorkflowReport",
    "run_pipeline",
    "run_stage",
]
