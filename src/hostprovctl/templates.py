"""Template rendering for generated configuration files."""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
)

BUILTIN_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class TemplateRenderError(RuntimeError):
    """Raised when a template cannot be loaded or rendered."""


@dataclass(slots=True)
class TemplateEngine:
    """Render Jinja2 templates with optional on-disk overrides.

    Templates are rendered with :class:`~jinja2.StrictUndefined`, so a
    template may only reference the variables supplied in the context.
    Everything else in the template, including Nginx ``$variables``, is copied
    through untouched.
    """

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Build an engine that prefers templates found in *override_dir*."""
        loaders: list[FileSystemLoader] = []
        if override_dir is not None and override_dir.is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(FileSystemLoader(str(BUILTIN_TEMPLATES_DIR)))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**dict(context))
        except TemplateError as exc:
            raise TemplateRenderError(
                f"Failed to render template '{template_name}': {exc.message or exc}"
            ) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise TemplateRenderError(
                f"Failed to read template '{template_name}': {exc}"
            ) from exc

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render *template_name* into *destination*.

        Returns ``True`` when the file content changed. Rendering errors raise
        :class:`TemplateRenderError` before anything is written; write errors
        propagate as :class:`OSError`.
        """
        content = self.render_to_string(template_name, context)
        return write_atomic(destination, content, mode=mode)


def write_atomic(destination: Path, content: str, *, mode: int = 0o644) -> bool:
    """Write *content* to *destination* through a private temporary file.

    The scratch file lives next to *destination* so the final ``os.replace``
    is atomic; it is removed whether or not the move succeeds. Returns
    ``False`` without touching the disk when *destination* already holds
    *content*.
    """
    encoded = content.encode("utf-8")
    try:
        if destination.read_bytes() == encoded:
            return False
    except FileNotFoundError:
        pass

    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, scratch_name = tempfile.mkstemp(
        prefix=f".{destination.name}.",
        suffix=".tmp",
        dir=str(destination.parent),
    )
    scratch = Path(scratch_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(encoded)
            handle.flush()
            os.fsync(handle.fileno())
        scratch.chmod(mode)
        os.replace(scratch, destination)
    finally:
        scratch.unlink(missing_ok=True)
    return True


__all__ = ["TemplateEngine", "TemplateRenderError", "write_atomic"]
