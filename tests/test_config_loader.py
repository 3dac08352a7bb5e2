"""Tests for snapsync.config_loader: hierarchical config loading."""

import textwrap

import pytest

from snapsync.config_loader import (
    _interpolate_recursive,
    _load_yaml,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with an empty cwd and home so no real config is discovered."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("SNAPSYNC_CONFIG", raising=False)
    monkeypatch.chdir(work)
    return work, home


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("DAV_HOST", "dav.local")
        assert interpolate_env_vars("https://${DAV_HOST}/") == "https://dav.local/"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_unclosed_reference_left_alone(self):
        assert interpolate_env_vars("${OOPS") == "${OOPS"

    def test_recursive(self, monkeypatch):
        monkeypatch.setenv("PW", "secret")
        data = {"webdav": {"password": "${PW}"}, "list": ["${PW}", 3]}
        assert _interpolate_recursive(data) == {
            "webdav": {"password": "secret"},
            "list": ["secret", 3],
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestIncludes:
    """Tests for the !include tag."""

    def test_relative_include(self, tmp_path):
        _write(tmp_path / "webdav.yml", "url: https://dav.example.com\n")
        main = _write(tmp_path / "config.yml", "webdav: !include webdav.yml\n")
        assert _load_yaml(main) == {"webdav": {"url": "https://dav.example.com"}}

    def test_missing_include(self, tmp_path):
        main = _write(tmp_path / "config.yml", "webdav: !include nope.yml\n")
        with pytest.raises(FileNotFoundError, match="Include file not found"):
            _load_yaml(main)

    def test_circular_include(self, tmp_path):
        _write(tmp_path / "a.yml", "b: !include b.yml\n")
        _write(tmp_path / "b.yml", "a: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml(tmp_path / "a.yml")


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscovery:
    """Tests for discover_config_files() and load_hierarchical_config()."""

    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_order_is_env_project_global(self, isolated, tmp_path, monkeypatch):
        work, home = isolated
        explicit = _write(tmp_path / "explicit.yml", "sync: {}\n")
        project = _write(work / ".snapsync" / "config.yml", "sync: {}\n")
        global_ = _write(home / ".config" / "snapsync" / "config.yml", "sync: {}\n")
        monkeypatch.setenv("SNAPSYNC_CONFIG", str(explicit))

        assert discover_config_files() == [explicit.resolve(), project, global_]

    def test_project_sections_win(self, isolated):
        work, home = isolated
        _write(
            home / ".config" / "snapsync" / "config.yml",
            """\
            sync:
              backend: webdav
            folder:
              path: /global
            """,
        )
        _write(
            work / ".snapsync" / "config.yml",
            """\
            sync:
              backend: folder
            """,
        )

        merged = load_hierarchical_config()

        assert merged["sync"] == {"backend": "folder"}
        assert merged["folder"] == {"path": "/global"}

    def test_non_mapping_root_is_skipped(self, isolated):
        work, _ = isolated
        _write(work / ".snapsync" / "config.yml", "- just\n- a list\n")
        assert load_hierarchical_config() == {}


class TestEnsureConfig:
    """Tests for ensure_config()."""

    def test_writes_starter_once(self, isolated):
        work, _ = isolated

        path = ensure_config()

        assert path == work / ".snapsync" / "config.yml"
        assert "# snapsync configuration" in path.read_text()
        path.write_text("sync: {}\n")
        assert ensure_config() == path
        assert path.read_text() == "sync: {}\n"
