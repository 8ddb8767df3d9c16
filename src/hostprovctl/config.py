"""Configuration loader for hostprovctl.

Configuration values are merged from several sources, later sources winning:

1. Built-in defaults.
2. ``/etc/hostprovctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``HOSTPROVCTL_``.
4. Explicit overrides supplied programmatically.

Environment keys use double underscores to express nesting, e.g.::

    export HOSTPROVCTL_REGISTRY__PORT=5443
    export HOSTPROVCTL_APT__UPGRADE=false

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
lists are parsed naturally. The result is exposed as immutable dataclasses.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure is an install problem
    raise RuntimeError(
        "PyYAML is required to load hostprovctl configuration. Install with "
        "`pip install hostprovctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "HOSTPROVCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class NginxConfig:
    """Web server binary, site directories and template name."""

    nginx_bin: str = "nginx"
    service: str = "nginx"
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    template: str = "nginx/site.conf.j2"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "nginx_bin": self.nginx_bin,
            "service": self.service,
            "sites_available": str(self.sites_available),
            "sites_enabled": str(self.sites_enabled),
            "template": self.template,
        }


@dataclass(frozen=True)
class SystemdConfig:
    """Service manager binary."""

    systemctl_bin: str = "systemctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"systemctl_bin": self.systemctl_bin}


@dataclass(frozen=True)
class AptConfig:
    """Package manager settings."""

    apt_bin: str = "apt-get"
    upgrade: bool = True
    packages: tuple[str, ...] = ("nginx", "certbot", "python3-certbot-nginx")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "apt_bin": self.apt_bin,
            "upgrade": self.upgrade,
            "packages": list(self.packages),
        }


@dataclass(frozen=True)
class CertbotConfig:
    """ACME client binary and its live certificate directory."""

    certbot_bin: str = "certbot"
    live_dir: Path = Path("/etc/letsencrypt/live")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"certbot_bin": self.certbot_bin, "live_dir": str(self.live_dir)}


@dataclass(frozen=True)
class DockerConfig:
    """Container runtime binary and bootstrap settings."""

    docker_bin: str = "docker"
    install_script: Path | None = None
    install_packages: tuple[str, ...] = ("docker.io",)
    htpasswd_image: str = "httpd:latest"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "docker_bin": self.docker_bin,
            "install_script": str(self.install_script) if self.install_script else None,
            "install_packages": list(self.install_packages),
            "htpasswd_image": self.htpasswd_image,
        }


@dataclass(frozen=True)
class RegistryConfig:
    """Container registry launch parameters."""

    root: Path | None = None
    image: str = "registry:3"
    container_name: str = "registry"
    port: int = 5000
    realm: str = "Registry Realm"

    def resolve_root(self) -> Path:
        """Return the registry root, defaulting to the working directory."""
        if self.root is not None:
            return self.root
        return Path.cwd()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "root": str(self.root) if self.root is not None else None,
            "image": self.image,
            "container_name": self.container_name,
            "port": self.port,
            "realm": self.realm,
        }


@dataclass(frozen=True)
class DoctorConfig:
    """Doctor thresholds."""

    warn_expiry_days: int = 30

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"warn_expiry_days": self.warn_expiry_days}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for hostprovctl."""

    config_file: Path
    logs_dir: Path
    templates_dir: Path
    os_release: Path
    supported_distros: tuple[str, ...]
    nginx: NginxConfig
    systemd: SystemdConfig
    apt: AptConfig
    certbot: CertbotConfig
    docker: DockerConfig
    registry: RegistryConfig
    doctor: DoctorConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "os_release": str(self.os_release),
            "supported_distros": list(self.supported_distros),
            "nginx": self.nginx.to_dict(),
            "systemd": self.systemd.to_dict(),
            "apt": self.apt.to_dict(),
            "certbot": self.certbot.to_dict(),
            "docker": self.docker.to_dict(),
            "registry": self.registry.to_dict(),
            "doctor": self.doctor.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/hostprovctl/config.yml",
    "logs_dir": "/var/log/hostprovctl",
    "templates_dir": "/etc/hostprovctl/templates",
    "os_release": "/etc/os-release",
    "supported_distros": ["ubuntu", "debian"],
    "nginx": {
        "nginx_bin": "nginx",
        "service": "nginx",
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
        "template": "nginx/site.conf.j2",
    },
    "systemd": {
        "systemctl_bin": "systemctl",
    },
    "apt": {
        "apt_bin": "apt-get",
        "upgrade": True,
        "packages": ["nginx", "certbot", "python3-certbot-nginx"],
    },
    "certbot": {
        "certbot_bin": "certbot",
        "live_dir": "/etc/letsencrypt/live",
    },
    "docker": {
        "docker_bin": "docker",
        "install_script": None,
        "install_packages": ["docker.io"],
        "htpasswd_image": "httpd:latest",
    },
    "registry": {
        "root": None,
        "image": "registry:3",
        "container_name": "registry",
        "port": 5000,
        "realm": "Registry Realm",
    },
    "doctor": {
        "warn_expiry_days": 30,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
SECTION_KEYS: dict[str, set[str]] = {
    name: set(cast(Mapping[str, object], value).keys())
    for name, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in SECTION_KEYS.items():
        value = raw.get(section)
        if value is None:
            continue
        mapping = _as_dict(value, section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    port = _as_dict(raw.get("registry"), "registry").get("port")
    if port is not None:
        port_value = _expect_int(port, "registry.port", default=5000)
        if not 0 < port_value < 65536:
            raise ConfigError(f"registry.port must be between 1 and 65535. Got {port_value}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    nginx_mapping = _as_dict(raw.get("nginx"), "nginx")
    nginx = NginxConfig(
        nginx_bin=str(nginx_mapping.get("nginx_bin", "nginx")),
        service=str(nginx_mapping.get("service", "nginx")),
        sites_available=_to_path(
            nginx_mapping.get("sites_available", "/etc/nginx/sites-available")
        ),
        sites_enabled=_to_path(nginx_mapping.get("sites_enabled", "/etc/nginx/sites-enabled")),
        template=str(nginx_mapping.get("template", "nginx/site.conf.j2")),
    )

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        systemctl_bin=str(systemd_mapping.get("systemctl_bin", "systemctl")),
    )

    apt_mapping = _as_dict(raw.get("apt"), "apt")
    apt = AptConfig(
        apt_bin=str(apt_mapping.get("apt_bin", "apt-get")),
        upgrade=_expect_bool(apt_mapping.get("upgrade"), "apt.upgrade", default=True),
        packages=_string_tuple(apt_mapping.get("packages"), "apt.packages", AptConfig.packages),
    )

    certbot_mapping = _as_dict(raw.get("certbot"), "certbot")
    certbot = CertbotConfig(
        certbot_bin=str(certbot_mapping.get("certbot_bin", "certbot")),
        live_dir=_to_path(certbot_mapping.get("live_dir", "/etc/letsencrypt/live")),
    )

    docker_mapping = _as_dict(raw.get("docker"), "docker")
    install_script_value = docker_mapping.get("install_script")
    docker = DockerConfig(
        docker_bin=str(docker_mapping.get("docker_bin", "docker")),
        install_script=_to_path(install_script_value) if install_script_value else None,
        install_packages=_string_tuple(
            docker_mapping.get("install_packages"),
            "docker.install_packages",
            DockerConfig.install_packages,
        ),
        htpasswd_image=str(docker_mapping.get("htpasswd_image", "httpd:latest")),
    )

    registry_mapping = _as_dict(raw.get("registry"), "registry")
    root_value = registry_mapping.get("root")
    registry = RegistryConfig(
        root=_to_path(root_value) if root_value else None,
        image=str(registry_mapping.get("image", "registry:3")),
        container_name=str(registry_mapping.get("container_name", "registry")),
        port=_expect_int(registry_mapping.get("port"), "registry.port", default=5000),
        realm=str(registry_mapping.get("realm", "Registry Realm")),
    )

    doctor_mapping = _as_dict(raw.get("doctor"), "doctor")
    warn_expiry_days = _expect_int(
        doctor_mapping.get("warn_expiry_days"), "doctor.warn_expiry_days", default=30
    )
    if warn_expiry_days < 0:
        raise ConfigError("doctor.warn_expiry_days must be non-negative.")

    distros = tuple(
        item.lower()
        for item in _string_tuple(
            raw.get("supported_distros"), "supported_distros", ("ubuntu", "debian")
        )
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        os_release=_to_path(raw.get("os_release")),
        supported_distros=distros,
        nginx=nginx,
        systemd=systemd,
        apt=apt,
        certbot=certbot,
        docker=docker,
        registry=registry,
        doctor=DoctorConfig(warn_expiry_days=warn_expiry_days),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _string_tuple(value: object, label: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        # Environment overrides may arrive as a whitespace/comma separated string.
        parts = value.replace(",", " ").split()
        return tuple(parts)
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a list of strings. Got {type(value).__name__}.")
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{label}[{index}] must be a non-empty string.")
        items.append(item.strip())
    return tuple(items)


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "AptConfig",
    "CertbotConfig",
    "ConfigError",
    "DockerConfig",
    "DoctorConfig",
    "NginxConfig",
    "RegistryConfig",
    "SystemdConfig",
    "load_config",
]
