"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import UBUNTU_OS_RELEASE, FakeRunner, make_runtime

from hostprovctl.cli import RuntimeContext
from hostprovctl.config import AppConfig, load_config


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Return a fresh scripted command runner."""
    return FakeRunner()


@pytest.fixture
def os_release(tmp_path: Path) -> Path:
    """Write an Ubuntu os-release file and return its path."""
    path = tmp_path / "os-release"
    path.write_text(UBUNTU_OS_RELEASE, encoding="utf-8")
    return path


@pytest.fixture
def app_config(tmp_path: Path, os_release: Path) -> AppConfig:
    """Return a configuration whose every path lives under ``tmp_path``."""
    return load_config(
        config_file=tmp_path / "config.yml",
        env={},
        overrides={
            "logs_dir": str(tmp_path / "logs"),
            "templates_dir": str(tmp_path / "templates"),
            "os_release": str(os_release),
            "nginx": {
                "sites_available": str(tmp_path / "nginx" / "sites-available"),
                "sites_enabled": str(tmp_path / "nginx" / "sites-enabled"),
            },
            "certbot": {"live_dir": str(tmp_path / "letsencrypt" / "live")},
            "registry": {"root": str(tmp_path / "registry")},
        },
    )


@pytest.fixture
def runtime(app_config: AppConfig, fake_runner: FakeRunner) -> RuntimeContext:
    """Return a root runtime backed by the fake runner."""
    return make_runtime(app_config, fake_runner)
