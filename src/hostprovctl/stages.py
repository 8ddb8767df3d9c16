"""Provisioning stages run after preflight validation."""
from __future__ import annotations

from pathlib import Path

from .errors import (
    CertificateError,
    InstallError,
    RegistryError,
    RenderError,
    ServiceError,
    UsageError,
    WriteError,
)
from .pipeline import StageContext, StageDefinition
from .preflight import Workflow
from .providers import (
    AptError,
    CertbotError,
    DockerError,
    NginxError,
    RegistryLaunch,
    SystemdError,
)
from .templates import TemplateRenderError


def _detail(exc: AptError | CertbotError | DockerError) -> str | None:
    return exc.result.diagnostic if exc.result is not None else None


# ---------------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------------


def install_packages(context: StageContext) -> str:
    """Refresh apt, upgrade, install the web/ACME packages and, for the registry, docker."""
    apt = context.collaborators.apt
    report = context.reporter
    packages = context.config.apt.packages

    report.info("Updating apt-get repositories")
    try:
        apt.update()
    except AptError as exc:
        raise InstallError(
            "Failed to update apt-get repositories.",
            detail=_detail(exc),
        ) from exc

    if context.config.apt.upgrade:
        report.info("Upgrading installed packages")
        try:
            apt.upgrade()
        except AptError as exc:
            raise InstallError(
                "Failed to upgrade installed packages.",
                detail=_detail(exc),
            ) from exc

    report.info(f"Installing {', '.join(packages)}...")
    try:
        apt.install(packages)
    except AptError as exc:
        raise InstallError(
            f"Failed to install {', '.join(packages)}.",
            detail=_detail(exc),
        ) from exc

    if context.request.workflow is Workflow.REGISTRY:
        ensure_container_runtime(context)
    return "System packages installed."


def ensure_container_runtime(context: StageContext) -> None:
    """Install docker when absent and verify the binary resolves afterwards."""
    docker = context.collaborators.docker
    report = context.reporter
    if docker.is_available():
        report.info("Docker is already installed")
        return

    report.warn("Docker is not installed")
    report.info("Installing Docker...")
    script = context.config.docker.install_script
    try:
        if script is not None:
            docker.run_install_script(script)
        else:
            context.collaborators.apt.install(context.config.docker.install_packages)
    except (AptError, DockerError) as exc:
        code = exc.result.returncode if exc.result is not None else 1
        raise InstallError(
            f"Docker installation failed with code {code}.",
            detail=_detail(exc),
        ) from exc

    if not docker.is_available():
        raise InstallError("Docker installation failed.")
    report.info("Docker successfully installed")


# ---------------------------------------------------------------------------
# Nginx
# ---------------------------------------------------------------------------


def render_config(context: StageContext) -> str:
    """Render the site template for the domain and enable the site."""
    nginx = context.collaborators.nginx
    report = context.reporter
    domain = context.request.domain
    site_path = nginx.site_path(domain)

    report.info(f"Generating Nginx configuration for {domain}")
    try:
        rendered = nginx.render_site(domain)
    except TemplateRenderError as exc:
        raise RenderError(str(exc)) from exc
    except OSError as exc:
        raise WriteError(f"Failed to write configuration to {site_path}: {exc}") from exc

    if rendered.changed:
        report.info(f"Wrote configuration to {site_path}")
    else:
        report.info(f"Configuration at {site_path} is up to date")

    report.info("Creating a symlink to Nginx configuration")
    try:
        nginx.enable(domain)
    except OSError as exc:
        raise WriteError(
            f"Failed to link {nginx.enabled_path(domain)} to {site_path}: {exc}"
        ) from exc
    return f"Site {domain} rendered and enabled."


def activate_service(context: StageContext) -> str:
    """Validate the nginx configuration, then start or reload the service."""
    nginx = context.collaborators.nginx
    systemd = context.collaborators.systemd
    report = context.reporter
    service = context.config.nginx.service

    report.info("Testing Nginx...")
    try:
        nginx.test_config()
    except NginxError as exc:
        raise ServiceError("Nginx configuration file is NOT OK", detail=str(exc)) from exc
    report.info("Nginx configuration is OK")

    try:
        if systemd.is_active(service):
            report.info("Reloading Nginx...")
            systemd.reload(service)
            outcome = "reloaded"
        else:
            report.info("Starting Nginx...")
            systemd.start(service)
            outcome = "started"
    except SystemdError as exc:
        raise ServiceError(f"Failed to activate {service}: {exc}") from exc
    report.info(f"Nginx successfully {outcome}")
    return f"Service {service} {outcome}."


# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------


def issue_certificate(context: StageContext) -> str:
    """Run certbot's nginx installer for the requested domain."""
    request = context.request
    report = context.reporter

    report.info("Setting up certbot via nginx")
    try:
        context.collaborators.certbot.obtain(request.domain, request.email)
    except CertbotError as exc:
        raise CertificateError(
            f"Failed to setup certbot for {request.domain}",
            detail=_detail(exc),
        ) from exc
    report.info("Successfully finished setting up certbot via nginx")
    return f"Certificate installed for {request.domain}."


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def registry_paths(context: StageContext) -> tuple[Path, Path, Path]:
    """Return ``(root, data_dir, htpasswd_file)`` for the registry."""
    root = context.config.registry.resolve_root()
    return root, root / "data", root / "auth" / "htpasswd"


def ensure_credentials(context: StageContext) -> bool:
    """Create the htpasswd file unless it already exists.

    Returns ``True`` when a file was created. An existing file is never
    rewritten or appended to.
    """
    request = context.request
    report = context.reporter
    if request.registry_user is None or request.registry_password is None:
        raise UsageError("Registry user and password are required for the registry workflow.")

    _, _, htpasswd_file = registry_paths(context)
    if htpasswd_file.is_dir():
        raise RegistryError(
            f"Credentials path {htpasswd_file} is a directory; remove it and re-run"
        )
    if htpasswd_file.is_file():
        report.info(f"Credentials file {htpasswd_file} already exists; leaving it unchanged")
        return False

    try:
        htpasswd_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RegistryError(f"Failed to create {htpasswd_file.parent}: {exc}") from exc

    report.info("Creating credentials for the registry")
    try:
        context.collaborators.docker.create_htpasswd(
            htpasswd_file,
            request.registry_user,
            request.registry_password,
        )
    except DockerError as exc:
        raise RegistryError(
            "Failed to create credential via httpd",
            detail=_detail(exc),
        ) from exc
    return True


def bootstrap_registry(context: StageContext) -> str:
    """Create credentials and (re)launch the registry container."""
    docker = context.collaborators.docker
    report = context.reporter
    registry = context.config.registry
    _, data_dir, htpasswd_file = registry_paths(context)
    certificates = context.collaborators.certbot.paths(context.request.domain)

    ensure_credentials(context)

    report.info("Launching the registry...")
    docker.remove_container(registry.container_name)
    launch = RegistryLaunch(
        name=registry.container_name,
        image=registry.image,
        port=registry.port,
        data_dir=data_dir,
        certificate=certificates.fullchain,
        key=certificates.privkey,
        htpasswd_file=htpasswd_file,
        realm=registry.realm,
    )
    try:
        docker.run_registry(launch)
    except DockerError as exc:
        raise RegistryError(
            f"Failed to launch registry container '{registry.container_name}'",
            detail=_detail(exc),
        ) from exc
    report.info("Successfully finished setting up the registry!")
    return f"Registry '{registry.container_name}' listening on port {registry.port}."


PACKAGES_STAGE = StageDefinition("packages", install_packages)
RENDER_STAGE = StageDefinition("render", render_config)
SERVICE_STAGE = StageDefinition("service", activate_service)
CERTIFICATE_STAGE = StageDefinition("certificate", issue_certificate)
REGISTRY_STAGE = StageDefinition("registry", bootstrap_registry)

WORKFLOW_STAGES: dict[Workflow, tuple[StageDefinition, ...]] = {
    Workflow.WEB: (PACKAGES_STAGE, RENDER_STAGE, SERVICE_STAGE, CERTIFICATE_STAGE),
    Workflow.REGISTRY: (
        PACKAGES_STAGE,
        RENDER_STAGE,
        SERVICE_STAGE,
        CERTIFICATE_STAGE,
        REGISTRY_STAGE,
    ),
}


def stages_for(workflow: Workflow) -> tuple[StageDefinition, ...]:
    """Return the ordered stages of *workflow*."""
    return WORKFLOW_STAGES[workflow]


__all__ = [
    "WORKFLOW_STAGES",
    "activate_service",
    "bootstrap_registry",
    "ensure_container_runtime",
    "ensure_credentials",
    "install_packages",
    "issue_certificate",
    "registry_paths",
    "render_config",
    "stages_for",
]
