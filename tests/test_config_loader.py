"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from hostprovctl.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "absent.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.logs_dir == Path("/var/log/hostprovctl")
    assert config.templates_dir == Path("/etc/hostprovctl/templates")
    assert config.os_release == Path("/etc/os-release")
    assert config.supported_distros == ("ubuntu", "debian")
    assert config.nginx.sites_available == Path("/etc/nginx/sites-available")
    assert config.nginx.sites_enabled == Path("/etc/nginx/sites-enabled")
    assert config.apt.upgrade is True
    assert config.apt.packages == ("nginx", "certbot", "python3-certbot-nginx")
    assert config.certbot.live_dir == Path("/etc/letsencrypt/live")
    assert config.docker.install_script is None
    assert config.registry.image == "registry:3"
    assert config.registry.port == 5000
    assert config.registry.realm == "Registry Realm"
    assert config.doctor.warn_expiry_days == 30


def test_registry_root_defaults_to_working_directory(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Without a configured root the registry lives in the current directory."""
    monkeypatch.chdir(tmp_path)
    config = load_config(config_file=tmp_path / "absent.yml", env={})

    assert config.registry.root is None
    assert config.registry.resolve_root() == tmp_path


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "hostprovctl.yml"
    cfg.write_text(
        "logs_dir: {logs}\n"
        "apt:\n"
        "  upgrade: false\n"
        "  packages: [nginx, certbot]\n"
        "docker:\n"
        "  install_script: /opt/get-docker.sh\n"
        "registry:\n"
        "  root: /srv/registry\n"
        "  port: 5443\n".format(logs=tmp_path / "logs")
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.logs_dir == tmp_path / "logs"
    assert config.apt.upgrade is False
    assert config.apt.packages == ("nginx", "certbot")
    assert config.docker.install_script == Path("/opt/get-docker.sh")
    assert config.registry.resolve_root() == Path("/srv/registry")
    assert config.registry.port == 5443


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("registry:\n  port: 5443\n")
    env = {
        "HOSTPROVCTL_REGISTRY__PORT": "6000",
        "HOSTPROVCTL_APT__UPGRADE": "false",
        "HOSTPROVCTL_APT__PACKAGES": "nginx, certbot python3-certbot-nginx",
        "HOSTPROVCTL_TEMPLATES_DIR": str(tmp_path / "templates"),
        "HOSTPROVCTL_SUPPORTED_DISTROS": "Debian",
    }

    config = load_config(config_file=cfg, env=env)

    assert config.registry.port == 6000
    assert config.apt.upgrade is False
    assert config.apt.packages == ("nginx", "certbot", "python3-certbot-nginx")
    assert config.templates_dir == tmp_path / "templates"
    assert config.supported_distros == ("debian",)


def test_programmatic_overrides_win(tmp_path: Path) -> None:
    """Explicit overrides beat environment variables."""
    config = load_config(
        config_file=tmp_path / "absent.yml",
        env={"HOSTPROVCTL_REGISTRY__CONTAINER_NAME": "from-env"},
        overrides={"registry": {"container_name": "from-override"}},
    )

    assert config.registry.container_name == "from-override"


def test_env_can_select_config_file(tmp_path: Path) -> None:
    """Environment variable selects an alternate config file."""
    cfg = tmp_path / "override.yml"
    cfg.write_text("nginx:\n  service: openresty\n")

    config = load_config(env={"HOSTPROVCTL_CONFIG_FILE": str(cfg)})

    assert config.config_file == cfg
    assert config.nginx.service == "openresty"


def test_invalid_config_file_raises(tmp_path: Path) -> None:
    """Non-mapping YAML raises a ConfigError."""
    cfg = tmp_path / "bad.yml"
    cfg.write_text("- not-a-mapping\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_unknown_top_level_key_raises(tmp_path: Path) -> None:
    """Unexpected top-level keys trigger ConfigError."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("unknown: value\n")

    with pytest.raises(ConfigError, match="Unknown configuration keys"):
        load_config(config_file=cfg, env={})


def test_unknown_nested_keys_raise(tmp_path: Path) -> None:
    """Extra section keys produce ConfigError for clarity."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("registry:\n  image: registry:3\n  extra: true\n")

    with pytest.raises(ConfigError, match="Unknown registry configuration keys"):
        load_config(config_file=cfg, env={})


@pytest.mark.parametrize("port", ["0", "70000"])
def test_out_of_range_registry_port_raises(tmp_path: Path, port: str) -> None:
    """Registry ports outside 1-65535 are rejected."""
    with pytest.raises(ConfigError, match="registry.port"):
        load_config(
            config_file=tmp_path / "absent.yml",
            env={"HOSTPROVCTL_REGISTRY__PORT": port},
        )


def test_non_boolean_upgrade_flag_raises(tmp_path: Path) -> None:
    """Booleans must be real booleans."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("apt:\n  upgrade: sometimes\n")

    with pytest.raises(ConfigError, match="apt.upgrade"):
        load_config(config_file=cfg, env={})


def test_negative_expiry_window_raises(tmp_path: Path) -> None:
    """The doctor expiry window cannot be negative."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("doctor:\n  warn_expiry_days: -1\n")

    with pytest.raises(ConfigError, match="warn_expiry_days"):
        load_config(config_file=cfg, env={})
