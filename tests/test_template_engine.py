"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest

from hostprovctl.templates import TemplateEngine, TemplateRenderError, write_atomic


def test_render_to_string_uses_builtin_templates() -> None:
    """The built-in site template substitutes only the domain."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("nginx/site.conf.j2", {"domain": "example.com"})

    assert "server_name example.com;" in output
    assert "/var/log/nginx/example.com.access.log" in output
    # Nginx variables pass through untouched.
    assert "try_files $uri $uri/ =404;" in output
    assert output.endswith("\n")


def test_render_requires_domain() -> None:
    """Undefined variables fail instead of rendering empty strings."""
    engine = TemplateEngine.with_overrides(None)

    with pytest.raises(TemplateRenderError, match="nginx/site.conf.j2"):
        engine.render_to_string("nginx/site.conf.j2", {})


def test_missing_template_raises_render_error() -> None:
    """Unknown template names are reported as render errors."""
    engine = TemplateEngine.with_overrides(None)

    with pytest.raises(TemplateRenderError):
        engine.render_to_string("nginx/missing.j2", {"domain": "example.com"})


def test_render_to_path_writes_with_mode(tmp_path: Path) -> None:
    """Rendering to a file writes content and respects the requested mode."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "sites-available" / "example.com"

    changed = engine.render_to_path(
        "nginx/site.conf.j2",
        destination,
        {"domain": "example.com"},
        mode=0o640,
    )

    assert changed is True
    assert destination.exists()
    assert oct(destination.stat().st_mode & 0o777) == "0o640"

    # Second render with same content should be a no-op.
    first = destination.read_bytes()
    changed_again = engine.render_to_path(
        "nginx/site.conf.j2",
        destination,
        {"domain": "example.com"},
        mode=0o640,
    )
    assert changed_again is False
    assert destination.read_bytes() == first
    assert sorted(path.name for path in destination.parent.iterdir()) == ["example.com"]


def test_override_path_takes_precedence(tmp_path: Path) -> None:
    """Override templates shadow the built-in ones."""
    override_dir = tmp_path / "templates"
    override_template = override_dir / "nginx" / "site.conf.j2"
    override_template.parent.mkdir(parents=True, exist_ok=True)
    override_template.write_text("override {{ domain }}\n", encoding="utf-8")

    engine = TemplateEngine.with_overrides(override_dir)

    rendered = engine.render_to_string("nginx/site.conf.j2", {"domain": "example.com"})

    assert rendered == "override example.com\n"


def test_undecodable_override_raises_render_error(tmp_path: Path) -> None:
    """Override templates that are not UTF-8 are reported as render errors."""
    override_dir = tmp_path / "templates"
    override_template = override_dir / "nginx" / "site.conf.j2"
    override_template.parent.mkdir(parents=True)
    override_template.write_bytes(b"server_name caf\xe9 {{ domain }};\n")

    engine = TemplateEngine.with_overrides(override_dir)

    with pytest.raises(TemplateRenderError, match="Failed to read template 'nginx/site.conf.j2'"):
        engine.render_to_string("nginx/site.conf.j2", {"domain": "example.com"})


def test_missing_override_directory_falls_back_to_builtin(tmp_path: Path) -> None:
    """A non-existent override directory is ignored."""
    engine = TemplateEngine.with_overrides(tmp_path / "absent")

    rendered = engine.render_to_string("nginx/site.conf.j2", {"domain": "example.com"})

    assert "server_name example.com;" in rendered


def test_write_atomic_cleans_up_scratch_on_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failed move leaves neither a partial destination nor a scratch file."""
    destination = tmp_path / "site"

    def fail_replace(src: object, dst: object) -> None:
        raise OSError("read-only file system")

    monkeypatch.setattr("hostprovctl.templates.os.replace", fail_replace)

    with pytest.raises(OSError, match="read-only"):
        write_atomic(destination, "content\n")

    assert list(tmp_path.iterdir()) == []


def test_write_atomic_replaces_changed_content(tmp_path: Path) -> None:
    """Different content is written and reported as a change."""
    destination = tmp_path / "site"
    destination.write_text("old\n", encoding="utf-8")

    assert write_atomic(destination, "new\n") is True
    assert destination.read_text(encoding="utf-8") == "new\n"
    assert [path.name for path in tmp_path.iterdir()] == ["site"]
