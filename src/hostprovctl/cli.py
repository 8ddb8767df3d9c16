"""Typer-powered command line interface for ``hostprovctl``.

Two provisioning workflows are exposed as subcommands: ``web`` (nginx plus a
Let's Encrypt certificate) and ``registry`` (the same, followed by an
authenticated Docker registry). ``doctor`` reports on an already provisioned
host without changing anything. Every command exits 0 on success and 1 on any
failure.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import click
import typer
from rich.console import Console

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .doctor import (
    DoctorEngine,
    DoctorReport,
    ProbeContext,
    ProbeResult,
    ProbeStatus,
    collect_probes,
    serialize_report,
)
from .errors import ProvisionError, UsageError
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .pipeline import Collaborators, StageSucceeded, WorkflowReport
from .preflight import Preflight, Workflow, validate_domain
from .providers import (
    AptProvider,
    CertbotProvider,
    CommandRunner,
    DockerProvider,
    NginxProvider,
    RecordingRunner,
    SubprocessRunner,
    SystemdProvider,
)
from .reporting import Reporter
from .templates import TemplateEngine
from .workflows import WorkflowRunner

console = Console()

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to hostprovctl's YAML config file.",
)
DOMAIN_OPTION = typer.Option(
    None,
    "-d",
    "--domain",
    help="Domain name served by nginx and covered by the certificate.",
)
EMAIL_OPTION = typer.Option(
    None,
    "-e",
    "--email",
    help="Contact email registered with Let's Encrypt.",
)
USER_OPTION = typer.Option(
    None,
    "-u",
    "--user",
    help="Registry login created in the htpasswd file.",
)
PASSWORD_OPTION = typer.Option(
    None,
    "-p",
    "--password",
    help="Registry password for --user.",
)
DOCTOR_REGISTRY_OPTION = typer.Option(
    False,
    "--registry",
    help="Also check the docker binary, registry credentials and container.",
)
DOCTOR_JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the doctor report as JSON.",
)

_PROBE_STATUS_STYLE = {
    ProbeStatus.GREEN: "[green]PASS[/green]",
    ProbeStatus.YELLOW: "[yellow]WARN[/yellow]",
    ProbeStatus.RED: "[red]FAIL[/red]",
}
_SUMMARY_STATUS_STYLE = {
    ProbeStatus.GREEN: "[green]GREEN[/green]",
    ProbeStatus.YELLOW: "[yellow]WARN[/yellow]",
    ProbeStatus.RED: "[red]RED[/red]",
}

app = typer.Typer(
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
    help=textwrap.dedent(
        """
        Provision a Debian/Ubuntu host as an HTTPS web front-end.

        `web` installs nginx and certbot, renders a site for the domain and
        obtains a Let's Encrypt certificate. `registry` does the same and then
        launches an authenticated Docker registry using that certificate.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    templates: TemplateEngine
    reporter: Reporter
    preflight: Preflight
    collaborators: Collaborators
    runner: CommandRunner


def build_collaborators(
    config: AppConfig,
    templates: TemplateEngine,
    runner: CommandRunner,
) -> Collaborators:
    """Wire every provider to a shared, recording command runner."""
    recorder = RecordingRunner(runner)
    return Collaborators(
        apt=AptProvider(apt_bin=config.apt.apt_bin, runner=recorder),
        nginx=NginxProvider(
            templates=templates,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
            nginx_bin=config.nginx.nginx_bin,
            template_name=config.nginx.template,
            runner=recorder,
        ),
        systemd=SystemdProvider(systemctl_bin=config.systemd.systemctl_bin, runner=recorder),
        certbot=CertbotProvider(
            certbot_bin=config.certbot.certbot_bin,
            live_dir=config.certbot.live_dir,
            runner=recorder,
        ),
        docker=DockerProvider(
            docker_bin=config.docker.docker_bin,
            htpasswd_image=config.docker.htpasswd_image,
            runner=recorder,
        ),
        recorder=recorder,
    )


def build_runtime(
    config: AppConfig,
    *,
    runner: CommandRunner | None = None,
    preflight: Preflight | None = None,
    reporter: Reporter | None = None,
) -> RuntimeContext:
    """Create a :class:`RuntimeContext` from *config*."""
    command_runner = runner or SubprocessRunner()
    templates = TemplateEngine.with_overrides(config.templates_dir)
    return RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        templates=templates,
        reporter=reporter or Reporter(),
        preflight=preflight
        or Preflight(
            os_release=config.os_release,
            supported_distros=config.supported_distros,
        ),
        collaborators=build_collaborators(config, templates, command_runner),
        runner=command_runner,
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        Reporter().error(str(exc))
        raise typer.Exit(code=ExitCode.FAILURE) from exc

    runtime = build_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the hostprovctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"hostprovctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    error: ProvisionError,
    reporter: Reporter,
    *,
    context: Mapping[str, object] | None = None,
) -> NoReturn:
    """Report a classified error, record it and terminate the command."""
    reporter.failure(error)
    errors = [error.message]
    if error.detail:
        errors.append(error.detail)
    op.error(
        f"{error.prefix} {error.message}",
        errors=errors,
        rc=ExitCode.FAILURE,
        context={"kind": error.kind, **(context or {})},
    )
    raise typer.Exit(code=ExitCode.FAILURE)


def _workflow_log_args(options: Mapping[str, str | None]) -> dict[str, object]:
    return {
        key: value
        for key, value in options.items()
        if key != "registry_password" and value is not None
    }


def _record_stages(op: OperationScope, report: WorkflowReport) -> None:
    for result in report.results:
        for step in result.steps:
            op.add_step(
                f"{result.stage}.command",
                status="success" if step.ok else "failed",
                detail=step.describe(),
            )
        if isinstance(result, StageSucceeded):
            op.add_step(result.stage, detail=result.message)
        else:
            op.add_step(result.stage, status="failed", detail=result.error.message)


def _run_workflow(
    runtime: RuntimeContext,
    workflow: Workflow,
    options: Mapping[str, str | None],
) -> None:
    runner = WorkflowRunner(
        config=runtime.config,
        preflight=runtime.preflight,
        collaborators=runtime.collaborators,
        reporter=runtime.reporter,
    )
    with runtime.logger.operation(
        workflow.value,
        args=_workflow_log_args(options),
        target={"kind": "host", "domain": options.get("domain")},
    ) as op:
        report = runner.run(workflow, options)
        _record_stages(op, report)

        failure = report.failure
        if failure is not None:
            _command_error(
                op,
                failure.error,
                runtime.reporter,
                context={"stage": failure.stage},
            )

        request = report.request
        domain = request.domain if request is not None else options.get("domain")
        op.success(
            f"Workflow '{workflow.value}' completed for {domain}.",
            changed=len(report.results) - 1,
            context={"stages": [result.stage for result in report.results]},
        )


@app.command(context_settings=CONTEXT_SETTINGS)
def web(
    ctx: typer.Context,
    domain: str | None = DOMAIN_OPTION,
    email: str | None = EMAIL_OPTION,
) -> None:
    """Install nginx and certbot, publish a site for DOMAIN and enable HTTPS."""
    runtime = _get_runtime(ctx)
    _run_workflow(runtime, Workflow.WEB, {"domain": domain, "email": email})


@app.command(context_settings=CONTEXT_SETTINGS)
def registry(
    ctx: typer.Context,
    user: str | None = USER_OPTION,
    password: str | None = PASSWORD_OPTION,
    domain: str | None = DOMAIN_OPTION,
    email: str | None = EMAIL_OPTION,
) -> None:
    """Run the web workflow, then launch an authenticated Docker registry."""
    runtime = _get_runtime(ctx)
    _run_workflow(
        runtime,
        Workflow.REGISTRY,
        {
            "registry_user": user,
            "registry_password": password,
            "domain": domain,
            "email": email,
        },
    )


def _collect_status_identifiers(
    results: Sequence[ProbeResult],
    status: ProbeStatus,
) -> list[str]:
    """Return identifiers for results matching a particular status."""
    return [
        f"{result.category}:{result.id}"
        for result in results
        if result.status is status
    ]


def _render_doctor_report(report: DoctorReport) -> None:
    """Render a doctor report in a human-friendly format."""
    summary = report.summary
    totals = summary.totals
    console.print(
        f"Doctor summary: {_SUMMARY_STATUS_STYLE[summary.status]} "
        f"(exit={summary.exit_code})"
    )
    console.print(
        f"Totals: green={totals.get(ProbeStatus.GREEN, 0)} "
        f"warn={totals.get(ProbeStatus.YELLOW, 0)} "
        f"red={totals.get(ProbeStatus.RED, 0)}"
    )
    console.print()
    for result in report.results:
        console.print(
            f"{_PROBE_STATUS_STYLE[result.status]} {result.id}: ",
            end="",
        )
        console.print(result.message, markup=False, highlight=False)
        if result.remediation:
            console.print(f"  remediation: {result.remediation}", markup=False)
        if result.warnings:
            console.print(f"  notes: {', '.join(result.warnings)}", markup=False)


@app.command(context_settings=CONTEXT_SETTINGS)
def doctor(
    ctx: typer.Context,
    domain: str | None = DOMAIN_OPTION,
    include_registry: bool = DOCTOR_REGISTRY_OPTION,
    json_output: bool = DOCTOR_JSON_OPTION,
) -> None:
    """Run read-only health checks for a provisioned DOMAIN."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "doctor",
        args={"domain": domain, "registry": include_registry, "json": json_output},
        target={"kind": "host", "scope": "health"},
    ) as op:
        if domain is None or not domain.strip():
            _command_error(
                op,
                UsageError("Missing required option -d (DOMAIN)."),
                runtime.reporter,
            )
        try:
            normalised = validate_domain(domain)
        except UsageError as exc:
            _command_error(op, exc, runtime.reporter)

        context = ProbeContext(
            config=runtime.config,
            domain=normalised,
            include_registry=include_registry,
            preflight=runtime.preflight,
            collaborators=runtime.collaborators,
            runner=runtime.runner,
        )
        engine = DoctorEngine(context)
        report = engine.run(collect_probes(context), metadata={"registry": include_registry})
        runtime.collaborators.drain_steps()
        report_payload = serialize_report(report)

        if json_output:
            console.print(
                json.dumps(report_payload, indent=2),
                markup=False,
                highlight=False,
                soft_wrap=True,
            )
        else:
            _render_doctor_report(report)

        warning_ids = _collect_status_identifiers(report.results, ProbeStatus.YELLOW)
        error_ids = _collect_status_identifiers(report.results, ProbeStatus.RED)
        log_context = {"report": report_payload}
        summary = report.summary

        if summary.exit_code == ExitCode.OK:
            if summary.status is ProbeStatus.YELLOW:
                if not json_output:
                    console.print("[yellow]Doctor completed with warnings.[/yellow]")
                op.warning(
                    "Doctor completed with warnings.",
                    warnings=warning_ids or None,
                    context=log_context,
                )
            else:
                op.success("Doctor run completed successfully.", context=log_context)
            return

        if not json_output:
            console.print("[red]Doctor detected failing checks.[/red]")
        op.error(
            "Doctor detected failing checks.",
            rc=summary.exit_code,
            errors=error_ids or None,
            context=log_context,
        )
        raise typer.Exit(code=summary.exit_code)


def main(argv: Sequence[str] | None = None) -> int:
    """Console-script entry point.

    Click reports bad invocations (unknown options, missing values) with exit
    code 2; they are reported as ``[ERROR]`` and mapped to 1 here.
    """
    try:
        result = app(
            args=list(argv) if argv is not None else None,
            prog_name="hostprovctl",
            standalone_mode=False,
        )
    except click.exceptions.UsageError as exc:
        Reporter().error(exc.format_message())
        if exc.ctx is not None:
            Console(stderr=True).print(exc.ctx.get_usage(), markup=False, highlight=False)
        return ExitCode.FAILURE
    except click.exceptions.Abort:
        return ExitCode.FAILURE
    except click.exceptions.Exit as exc:
        return exc.exit_code
    if isinstance(result, int):
        return result
    return ExitCode.OK


__all__ = ["RuntimeContext", "app", "build_collaborators", "build_runtime", "main"]
