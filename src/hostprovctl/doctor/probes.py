"""Probe registration entry point for the doctor command."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509

from ..errors import PlatformError, PrivilegeError
from ..preflight import check_privilege, detect_platform
from ..providers import NginxError, SystemdError
from .models import (
    ProbeCategory,
    ProbeContext,
    ProbeDefinition,
    ProbeResult,
    ProbeStatus,
)


def collect_probes(context: ProbeContext) -> Sequence[ProbeDefinition]:
    """Return the set of probes that should run for the current context."""
    probes: list[ProbeDefinition] = []
    probes.extend(_env_probes(context))
    probes.extend(_nginx_probes())
    probes.extend(_tls_probes())
    if context.include_registry:
        probes.extend(_registry_probes())
    return tuple(probes)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_probe(
    probe_id: str,
    category: ProbeCategory,
    handler: Callable[[ProbeContext], ProbeResult],
) -> ProbeDefinition:
    return ProbeDefinition(id=probe_id, category=category, run=handler)


# ---------------------------------------------------------------------------
# Environment probes
# ---------------------------------------------------------------------------


def _env_probes(context: ProbeContext) -> Sequence[ProbeDefinition]:
    config = context.config
    commands = [
        config.nginx.nginx_bin,
        config.certbot.certbot_bin,
        config.systemd.systemctl_bin,
    ]
    if context.include_registry:
        commands.append(config.docker.docker_bin)
    probes = [
        _make_probe("env-platform", "env", _probe_env_platform),
        _make_probe("env-privilege", "env", _probe_env_privilege),
    ]
    probes.extend(
        _make_probe(f"env-{Path(command).name}", "env", _probe_env_command(command))
        for command in commands
    )
    return tuple(probes)


def _probe_env_platform(context: ProbeContext) -> ProbeResult:
    preflight = context.preflight
    try:
        info = detect_platform(preflight.os_release, preflight.supported_distros)
    except PlatformError as exc:
        return ProbeResult(
            id="env-platform",
            category="env",
            status=ProbeStatus.RED,
            message=str(exc),
            remediation="Run hostprovctl on Ubuntu or Debian.",
        )
    return ProbeResult(
        id="env-platform",
        category="env",
        status=ProbeStatus.GREEN,
        message=f"Platform: {info.pretty_name}",
        data={"id": info.distro_id},
    )


def _probe_env_privilege(context: ProbeContext) -> ProbeResult:
    try:
        check_privilege(context.preflight.geteuid)
    except PrivilegeError as exc:
        return ProbeResult(
            id="env-privilege",
            category="env",
            status=ProbeStatus.YELLOW,
            message=f"Running as UID {exc.uid}; provisioning requires root.",
            remediation="Re-run with sudo for accurate results.",
            warnings=("privilege:non-root",),
        )
    return ProbeResult(
        id="env-privilege",
        category="env",
        status=ProbeStatus.GREEN,
        message="Running as root.",
    )


def _probe_env_command(command: str) -> Callable[[ProbeContext], ProbeResult]:
    probe_id = f"env-{Path(command).name}"

    def _run(context: ProbeContext) -> ProbeResult:
        if context.runner.which(command) is not None:
            return ProbeResult(
                id=probe_id,
                category="env",
                status=ProbeStatus.GREEN,
                message=f"Binary '{command}' available.",
            )
        return ProbeResult(
            id=probe_id,
            category="env",
            status=ProbeStatus.RED,
            message=f"Required binary '{command}' not found on PATH.",
            remediation="Run the provisioning workflow to install it.",
        )

    return _run


# ---------------------------------------------------------------------------
# Nginx probes
# ---------------------------------------------------------------------------


def _nginx_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("nginx-config", "nginx", _probe_nginx_config),
        _make_probe("nginx-site", "nginx", _probe_nginx_site),
        _make_probe("nginx-service", "nginx", _probe_nginx_service),
    )


def _probe_nginx_config(context: ProbeContext) -> ProbeResult:
    try:
        context.collaborators.nginx.test_config()
    except NginxError as exc:
        return ProbeResult(
            id="nginx-config",
            category="nginx",
            status=ProbeStatus.RED,
            message=f"nginx -t failed: {exc}",
        )
    return ProbeResult(
        id="nginx-config",
        category="nginx",
        status=ProbeStatus.GREEN,
        message="nginx -t validation succeeded.",
    )


def _probe_nginx_site(context: ProbeContext) -> ProbeResult:
    provider = context.collaborators.nginx
    domain = context.domain
    site_path = provider.site_path(domain)
    if not site_path.exists():
        return ProbeResult(
            id="nginx-site",
            category="nginx",
            status=ProbeStatus.RED,
            message=f"Missing nginx site configuration {site_path}.",
            remediation="Run the web or registry workflow for this domain.",
        )
    if not provider.is_enabled(domain):
        return ProbeResult(
            id="nginx-site",
            category="nginx",
            status=ProbeStatus.YELLOW,
            message=f"Site {domain} present but not enabled.",
            warnings=("nginx:disabled",),
        )
    return ProbeResult(
        id="nginx-site",
        category="nginx",
        status=ProbeStatus.GREEN,
        message=f"Site {domain} present and enabled.",
        data={"path": str(site_path)},
    )


def _probe_nginx_service(context: ProbeContext) -> ProbeResult:
    service = context.config.nginx.service
    try:
        active = context.collaborators.systemd.is_active(service)
    except SystemdError as exc:
        return ProbeResult(
            id="nginx-service",
            category="nginx",
            status=ProbeStatus.RED,
            message=f"Unable to query {service}: {exc}",
        )
    if not active:
        return ProbeResult(
            id="nginx-service",
            category="nginx",
            status=ProbeStatus.RED,
            message=f"Service {service} is not active.",
            remediation=f"systemctl start {service}",
        )
    return ProbeResult(
        id="nginx-service",
        category="nginx",
        status=ProbeStatus.GREEN,
        message=f"Service {service} is active.",
    )


# ---------------------------------------------------------------------------
# TLS probes
# ---------------------------------------------------------------------------


def _tls_probes() -> Sequence[ProbeDefinition]:
    return (_make_probe("tls-certificate", "tls", _probe_tls_certificate),)


def _probe_tls_certificate(context: ProbeContext) -> ProbeResult:
    paths = context.collaborators.certbot.paths(context.domain)
    try:
        pem = paths.fullchain.read_bytes()
    except FileNotFoundError:
        return ProbeResult(
            id="tls-certificate",
            category="tls",
            status=ProbeStatus.RED,
            message=f"Certificate {paths.fullchain} not found.",
            remediation="Run the web workflow to request a certificate.",
        )
    except OSError as exc:
        return ProbeResult(
            id="tls-certificate",
            category="tls",
            status=ProbeStatus.RED,
            message=f"Unable to read {paths.fullchain}: {exc}",
        )

    try:
        certificate = x509.load_pem_x509_certificate(pem)
    except ValueError as exc:
        return ProbeResult(
            id="tls-certificate",
            category="tls",
            status=ProbeStatus.RED,
            message=f"Certificate {paths.fullchain} could not be parsed: {exc}",
        )

    expires = certificate.not_valid_after_utc
    remaining = expires - datetime.now(UTC)
    data = {"not_valid_after": expires.isoformat(), "days_remaining": remaining.days}
    if remaining.total_seconds() <= 0:
        return ProbeResult(
            id="tls-certificate",
            category="tls",
            status=ProbeStatus.RED,
            message=f"Certificate for {context.domain} expired on {expires:%Y-%m-%d}.",
            remediation="certbot renew",
            data=data,
        )
    if remaining.days < context.config.doctor.warn_expiry_days:
        return ProbeResult(
            id="tls-certificate",
            category="tls",
            status=ProbeStatus.YELLOW,
            message=f"Certificate for {context.domain} expires in {remaining.days} day(s).",
            remediation="certbot renew",
            data=data,
            warnings=("tls:expiring",),
        )
    return ProbeResult(
        id="tls-certificate",
        category="tls",
        status=ProbeStatus.GREEN,
        message=f"Certificate for {context.domain} valid until {expires:%Y-%m-%d}.",
        data=data,
    )


# ---------------------------------------------------------------------------
# Registry probes
# ---------------------------------------------------------------------------


def _registry_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("registry-credentials", "registry", _probe_registry_credentials),
        _make_probe("registry-container", "registry", _probe_registry_container),
    )


def _probe_registry_credentials(context: ProbeContext) -> ProbeResult:
    htpasswd_file = context.config.registry.resolve_root() / "auth" / "htpasswd"
    if not htpasswd_file.is_file():
        return ProbeResult(
            id="registry-credentials",
            category="registry",
            status=ProbeStatus.RED,
            message=f"Credentials file {htpasswd_file} not found.",
            remediation="Run the registry workflow to create it.",
        )
    return ProbeResult(
        id="registry-credentials",
        category="registry",
        status=ProbeStatus.GREEN,
        message=f"Credentials file {htpasswd_file} present.",
    )


def _probe_registry_container(context: ProbeContext) -> ProbeResult:
    name = context.config.registry.container_name
    if not context.collaborators.docker.container_running(name):
        return ProbeResult(
            id="registry-container",
            category="registry",
            status=ProbeStatus.RED,
            message=f"Container '{name}' is not running.",
            remediation="Run the registry workflow to relaunch it.",
        )
    return ProbeResult(
        id="registry-container",
        category="registry",
        status=ProbeStatus.GREEN,
        message=f"Container '{name}' is running.",
    )


__all__ = ["collect_probes"]
