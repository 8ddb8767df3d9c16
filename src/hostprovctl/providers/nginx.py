"""Nginx provider for managing the provisioned site configuration."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..templates import TemplateEngine
from .commands import CommandResult, CommandRunner, SubprocessRunner


class NginxError(RuntimeError):
    """Raised when nginx operations fail."""


@dataclass(slots=True)
class NginxRenderResult:
    """Outcome of rendering an nginx site configuration."""

    changed: bool
    path: Path


@dataclass(slots=True)
class NginxProvider:
    """Render, enable and validate nginx site configurations."""

    templates: TemplateEngine
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    nginx_bin: str = "nginx"
    template_name: str = "nginx/site.conf.j2"
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def site_path(self, domain: str) -> Path:
        """Return the path to the site configuration for *domain*."""
        return self.sites_available / domain

    def enabled_path(self, domain: str) -> Path:
        """Return the path of the symlink in sites-enabled for *domain*."""
        return self.sites_enabled / domain

    def render_site(self, domain: str) -> NginxRenderResult:
        """Render the site configuration for *domain* into sites-available.

        Only ``domain`` is exposed to the template. Raises
        :class:`~hostprovctl.templates.TemplateRenderError` when rendering
        fails and :class:`OSError` when the file cannot be written.
        """
        destination = self.site_path(domain)
        changed = self.templates.render_to_path(
            self.template_name,
            destination,
            {"domain": domain},
            mode=0o644,
        )
        return NginxRenderResult(changed=changed, path=destination)

    def enable(self, domain: str) -> None:
        """Enable the site by (re)creating the sites-enabled symlink."""
        source = self.site_path(domain)
        target = self.enabled_path(domain)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.is_symlink() or target.exists():
            target.unlink()
        target.symlink_to(source)

    def is_enabled(self, domain: str) -> bool:
        """Return True when the sites-enabled symlink points at the site file."""
        target = self.enabled_path(domain)
        if not target.is_symlink():
            return False
        try:
            return target.resolve() == self.site_path(domain).resolve()
        except OSError:
            return False

    def test_config(self) -> CommandResult:
        """Run ``nginx -t`` to validate the configuration."""
        return self._run_nginx(["-t"])

    # ------------------------------------------------------------------
    def _run_nginx(self, args: Sequence[str]) -> CommandResult:
        result = self.runner.run([self.nginx_bin, *args])
        if not result.ok:
            raise NginxError(
                f"{self.nginx_bin} {' '.join(args)} failed "
                f"(exit {result.returncode}): {result.diagnostic}"
            )
        return result


__all__ = ["NginxError", "NginxProvider", "NginxRenderResult"]
