"""Docker provider: runtime detection, credentials and the registry container."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .commands import CommandResult, CommandRunner, SubprocessRunner

CONTAINER_AUTH_DIR = "/etc/auth"
WATCHTOWER_OPT_OUT = "com.centurylinklabs.watchtower.enable=false"


class DockerError(RuntimeError):
    """Raised when a docker invocation fails."""

    def __init__(self, message: str, *, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(frozen=True, slots=True)
class RegistryLaunch:
    """Everything needed to start the registry container."""

    name: str
    image: str
    port: int
    data_dir: Path
    certificate: Path
    key: Path
    htpasswd_file: Path
    realm: str = "Registry Realm"


@dataclass(slots=True)
class DockerProvider:
    """Drive the docker CLI."""

    docker_bin: str = "docker"
    htpasswd_image: str = "httpd:latest"
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def is_available(self) -> bool:
        """Return True when the docker binary resolves on PATH."""
        return self.runner.which(self.docker_bin) is not None

    def run_install_script(self, script: Path) -> CommandResult:
        """Run an external docker bootstrap script."""
        result = self.runner.run([str(script)])
        if not result.ok:
            raise DockerError(
                f"Docker installation failed with code {result.returncode}.",
                result=result,
            )
        return result

    def create_htpasswd(self, htpasswd_file: Path, user: str, password: str) -> CommandResult:
        """Create *htpasswd_file* with one bcrypt entry for *user*.

        The password is fed through stdin so it never shows up in the process
        list.
        """
        args = [
            self.docker_bin,
            "run",
            "--rm",
            "-i",
            "-v",
            f"{htpasswd_file.parent}:{CONTAINER_AUTH_DIR}",
            self.htpasswd_image,
            "htpasswd",
            "-B",
            "-c",
            "-i",
            f"{CONTAINER_AUTH_DIR}/{htpasswd_file.name}",
            user,
        ]
        result = self.runner.run(args, input=password)
        if not result.ok:
            raise DockerError(
                f"htpasswd container failed (exit {result.returncode})",
                result=result,
            )
        return result

    def remove_container(self, name: str) -> list[CommandResult]:
        """Stop and remove container *name*; a missing container is not an error."""
        return [
            self.runner.run([self.docker_bin, "stop", name]),
            self.runner.run([self.docker_bin, "rm", name]),
        ]

    def registry_run_args(self, launch: RegistryLaunch) -> list[str]:
        """Return the ``docker run`` argument list for *launch*."""
        return [
            self.docker_bin,
            "run",
            "-d",
            "--restart=always",
            "--name",
            launch.name,
            "-p",
            f"{launch.port}:5000",
            "-v",
            f"{launch.data_dir}:/var/lib/registry",
            "-v",
            f"{launch.certificate}:/certs/domain.crt:ro",
            "-v",
            f"{launch.key}:/certs/domain.key:ro",
            "-v",
            f"{launch.htpasswd_file}:/auth/htpasswd:ro",
            "-e",
            "REGISTRY_STORAGE_FILESYSTEM_ROOTDIRECTORY=/var/lib/registry",
            "-e",
            "REGISTRY_AUTH=htpasswd",
            "-e",
            f"REGISTRY_AUTH_HTPASSWD_REALM={launch.realm}",
            "-e",
            "REGISTRY_AUTH_HTPASSWD_PATH=/auth/htpasswd",
            "-e",
            "REGISTRY_HTTP_ADDR=0.0.0.0:5000",
            "-e",
            "REGISTRY_HTTP_TLS_CERTIFICATE=/certs/domain.crt",
            "-e",
            "REGISTRY_HTTP_TLS_KEY=/certs/domain.key",
            "--label",
            WATCHTOWER_OPT_OUT,
            launch.image,
        ]

    def run_registry(self, launch: RegistryLaunch) -> CommandResult:
        """Start a fresh registry container."""
        result = self.runner.run(self.registry_run_args(launch))
        if not result.ok:
            raise DockerError(
                f"docker run {launch.name} failed (exit {result.returncode})",
                result=result,
            )
        return result

    def container_running(self, name: str) -> bool:
        """Return True when container *name* exists and is running."""
        result = self.runner.run(
            [self.docker_bin, "inspect", "--format", "{{.State.Running}}", name]
        )
        return result.ok and result.stdout.strip() == "true"


__all__ = ["DockerError", "DockerProvider", "RegistryLaunch"]
