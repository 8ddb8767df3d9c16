"""Tests for the certbot provider."""
from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeRunner

from hostprovctl.providers.certbot import CertbotError, CertbotProvider


@pytest.fixture
def provider(tmp_path: Path, fake_runner: FakeRunner) -> CertbotProvider:
    """Return a certbot provider with a temporary live directory."""
    return CertbotProvider(
        certbot_bin="certbot",
        live_dir=tmp_path / "live",
        runner=fake_runner,
    )


def test_obtain_runs_nginx_installer(provider: CertbotProvider, fake_runner: FakeRunner) -> None:
    """Certificates are obtained non-interactively with an HTTP redirect."""
    provider.obtain("example.com", "admin@example.com")

    assert fake_runner.commands() == [
        (
            "certbot",
            "--nginx",
            "--non-interactive",
            "--agree-tos",
            "--redirect",
            "-d",
            "example.com",
            "--email",
            "admin@example.com",
        )
    ]


def test_obtain_failure_raises(provider: CertbotProvider, fake_runner: FakeRunner) -> None:
    """A failed ACME challenge is surfaced with certbot's output."""
    fake_runner.respond("certbot", returncode=1, stdout="Challenge failed for domain")

    with pytest.raises(CertbotError) as excinfo:
        provider.obtain("example.com", "admin@example.com")

    assert excinfo.value.result is not None
    assert excinfo.value.result.diagnostic == "Challenge failed for domain"


def test_paths_point_at_live_directory(provider: CertbotProvider, tmp_path: Path) -> None:
    """Certificate paths follow certbot's live layout."""
    paths = provider.paths("example.com")

    assert paths.fullchain == tmp_path / "live" / "example.com" / "fullchain.pem"
    assert paths.privkey == tmp_path / "live" / "example.com" / "privkey.pem"
