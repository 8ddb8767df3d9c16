"""Tests for the docker provider."""
from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeRunner

from hostprovctl.providers.docker import (
    WATCHTOWER_OPT_OUT,
    DockerError,
    DockerProvider,
    RegistryLaunch,
)


@pytest.fixture
def provider(fake_runner: FakeRunner) -> DockerProvider:
    """Return a docker provider backed by the fake runner."""
    return DockerProvider(docker_bin="docker", runner=fake_runner)


def _launch(tmp_path: Path) -> RegistryLaunch:
    return RegistryLaunch(
        name="registry",
        image="registry:3",
        port=5000,
        data_dir=tmp_path / "data",
        certificate=Path("/etc/letsencrypt/live/example.com/fullchain.pem"),
        key=Path("/etc/letsencrypt/live/example.com/privkey.pem"),
        htpasswd_file=tmp_path / "auth" / "htpasswd",
    )


def test_is_available_uses_path_lookup(provider: DockerProvider, fake_runner: FakeRunner) -> None:
    """Availability follows PATH resolution."""
    assert provider.is_available() is False

    fake_runner.available.add("docker")

    assert provider.is_available() is True


def test_create_htpasswd_feeds_password_through_stdin(
    provider: DockerProvider,
    fake_runner: FakeRunner,
    tmp_path: Path,
) -> None:
    """The password is piped to htpasswd and never appears in the arguments."""
    htpasswd_file = tmp_path / "auth" / "htpasswd"

    provider.create_htpasswd(htpasswd_file, "alice", "s3cret")

    (call,) = fake_runner.calls
    assert call.input == "s3cret"
    assert "s3cret" not in " ".join(call.args)
    assert call.args == (
        "docker",
        "run",
        "--rm",
        "-i",
        "-v",
        f"{tmp_path / 'auth'}:/etc/auth",
        "httpd:latest",
        "htpasswd",
        "-B",
        "-c",
        "-i",
        "/etc/auth/htpasswd",
        "alice",
    )


def test_create_htpasswd_failure_raises(
    provider: DockerProvider,
    fake_runner: FakeRunner,
    tmp_path: Path,
) -> None:
    """A failing helper container raises DockerError."""
    fake_runner.respond("docker", "run", returncode=125, stderr="pull access denied")

    with pytest.raises(DockerError) as excinfo:
        provider.create_htpasswd(tmp_path / "htpasswd", "alice", "s3cret")

    assert excinfo.value.result is not None
    assert excinfo.value.result.diagnostic == "pull access denied"


def test_remove_container_ignores_missing_container(
    provider: DockerProvider,
    fake_runner: FakeRunner,
) -> None:
    """Stop and remove run even when the container does not exist."""
    fake_runner.respond("docker", "stop", returncode=1, stderr="No such container")
    fake_runner.respond("docker", "rm", returncode=1, stderr="No such container")

    results = provider.remove_container("registry")

    assert [result.args for result in results] == [
        ("docker", "stop", "registry"),
        ("docker", "rm", "registry"),
    ]


def test_registry_run_args_mount_tls_and_credentials(
    provider: DockerProvider,
    tmp_path: Path,
) -> None:
    """The registry container serves TLS with htpasswd auth on port 5000."""
    args = provider.registry_run_args(_launch(tmp_path))

    assert args[:3] == ["docker", "run", "-d"]
    assert "--restart=always" in args
    assert args[args.index("--name") + 1] == "registry"
    assert args[args.index("-p") + 1] == "5000:5000"
    volumes = [args[index + 1] for index, value in enumerate(args) if value == "-v"]
    assert volumes == [
        f"{tmp_path / 'data'}:/var/lib/registry",
        "/etc/letsencrypt/live/example.com/fullchain.pem:/certs/domain.crt:ro",
        "/etc/letsencrypt/live/example.com/privkey.pem:/certs/domain.key:ro",
        f"{tmp_path / 'auth' / 'htpasswd'}:/auth/htpasswd:ro",
    ]
    env = [args[index + 1] for index, value in enumerate(args) if value == "-e"]
    assert "REGISTRY_AUTH=htpasswd" in env
    assert "REGISTRY_AUTH_HTPASSWD_REALM=Registry Realm" in env
    assert "REGISTRY_AUTH_HTPASSWD_PATH=/auth/htpasswd" in env
    assert "REGISTRY_HTTP_ADDR=0.0.0.0:5000" in env
    assert "REGISTRY_HTTP_TLS_CERTIFICATE=/certs/domain.crt" in env
    assert "REGISTRY_HTTP_TLS_KEY=/certs/domain.key" in env
    assert args[args.index("--label") + 1] == WATCHTOWER_OPT_OUT
    assert args[-1] == "registry:3"


def test_run_registry_failure_raises(
    provider: DockerProvider,
    fake_runner: FakeRunner,
    tmp_path: Path,
) -> None:
    """A failed ``docker run`` is surfaced as DockerError."""
    fake_runner.respond("docker", "run", "-d", returncode=125, stderr="port is already allocated")

    with pytest.raises(DockerError, match="docker run registry failed"):
        provider.run_registry(_launch(tmp_path))


def test_container_running_reads_inspect_output(
    provider: DockerProvider,
    fake_runner: FakeRunner,
) -> None:
    """Only ``true`` from docker inspect counts as running."""
    fake_runner.respond("docker", "inspect", stdout="true\n")
    assert provider.container_running("registry") is True

    fake_runner.respond("docker", "inspect", stdout="false\n")
    assert provider.container_running("registry") is False

    fake_runner.respond("docker", "inspect", returncode=1, stderr="No such object")
    assert provider.container_running("registry") is False


def test_install_script_failure_reports_exit_code(
    provider: DockerProvider,
    fake_runner: FakeRunner,
) -> None:
    """The bootstrap script's exit code appears in the error."""
    fake_runner.respond("/opt/get-docker.sh", returncode=7)

    with pytest.raises(DockerError, match="Docker installation failed with code 7."):
        provider.run_install_script(Path("/opt/get-docker.sh"))
