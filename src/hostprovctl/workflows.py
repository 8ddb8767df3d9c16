"""Workflow orchestration: preflight first, then the workflow's stages."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .config import AppConfig
from .errors import ProvisionError
from .pipeline import (
    Collaborators,
    StageContext,
    StageFailed,
    StageResult,
    StageSucceeded,
    WorkflowReport,
    run_pipeline,
)
from .preflight import Preflight, Workflow
from .reporting import Reporter
from .stages import stages_for

DNS_REMINDER = "Make sure the domain's A/CNAME records already point at this host"


@dataclass(slots=True)
class WorkflowRunner:
    """Run a provisioning workflow from raw options to a report."""

    config: AppConfig
    preflight: Preflight
    collaborators: Collaborators
    reporter: Reporter

    def run(self, workflow: Workflow, options: Mapping[str, str | None]) -> WorkflowReport:
        """Validate *options*, then run each stage until one fails."""
        try:
            request, platform = self.preflight.validate(workflow, options)
        except ProvisionError as exc:
            return WorkflowReport(
                workflow=workflow,
                results=(StageFailed(stage="preflight", error=exc),),
            )

        results: list[StageResult] = [
            StageSucceeded(
                stage="preflight",
                message=f"Running as root on {platform.pretty_name}.",
            )
        ]
        self.reporter.info(DNS_REMINDER)
        context = StageContext(
            request=request,
            config=self.config,
            collaborators=self.collaborators,
            reporter=self.reporter,
        )
        results.extend(run_pipeline(stages_for(workflow), context))
        return WorkflowReport(workflow=workflow, results=tuple(results), request=request)


__all__ = ["DNS_REMINDER", "WorkflowRunner"]
