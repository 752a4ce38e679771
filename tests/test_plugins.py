"""Tests for nattix.plugins: discovery, validation, ordering, and import."""

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from nattix.app import App
from nattix.config import AppConfig
from nattix.plugins import (
    DuplicatePluginId,
    MissingDependency,
    PluginError,
    PluginValidationError,
    VersionMismatch,
    load_plugins,
    parse_version,
    plugin_folders,
    read_manifest,
)
from nattix.testing import TestClient

RECORDING_PLUGIN = """\
def register(app):
    app.calls.append({name!r})
"""


def make_plugin(
    root: Path,
    folder: str,
    *,
    plugin_src: str | None = None,
    route_src: str | None = None,
    raw_manifest: str | None = None,
    **manifest: Any,
) -> Path:
    """Write a plugin folder with an install.json and a plugin.py."""
    path = root / folder
    path.mkdir(parents=True)
    data = {"id": folder, "name": folder.title(), "author": "tests", "version": "1.0.0"}
    data.update(manifest)
    (path / "install.json").write_text(
        raw_manifest if raw_manifest is not None else json.dumps(data), encoding="utf-8"
    )
    if plugin_src is None:
        plugin_src = RECORDING_PLUGIN.format(name=folder)
    if plugin_src:
        (path / "plugin.py").write_text(plugin_src, encoding="utf-8")
    if route_src is not None:
        (path / "route.py").write_text(route_src, encoding="utf-8")
    return path


@pytest.fixture
def plugins_dir(tmp_path):
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture
def recorder():
    return SimpleNamespace(calls=[])


class TestParseVersion:
    def test_padding(self) -> None:
        assert parse_version("1.2") == (1, 2, 0)
        assert parse_version("1.10.0") > parse_version("1.9.9")

    def test_invalid(self) -> None:
        with pytest.raises(PluginValidationError):
            parse_version("1.x")


class TestDiscovery:
    def test_missing_directory(self, tmp_path) -> None:
        with pytest.raises(PluginError, match="Plugins folder not found"):
            plugin_folders(tmp_path / "nope")

    def test_sorted_and_hidden_skipped(self, plugins_dir) -> None:
        for name in ("zeta", "alpha", ".git", "__pycache__"):
            (plugins_dir / name).mkdir()
        (plugins_dir / "README.md").write_text("", encoding="utf-8")
        assert [p.name for p in plugin_folders(plugins_dir)] == ["alpha", "zeta"]

    def test_filter(self, plugins_dir) -> None:
        (plugins_dir / "keep").mkdir()
        (plugins_dir / "drop").mkdir()
        folders = plugin_folders(plugins_dir, filter=lambda p: p.name == "keep")
        assert [p.name for p in folders] == ["keep"]

    def test_required_folders(self, plugins_dir) -> None:
        (plugins_dir / "blog" / "views").mkdir(parents=True)
        with pytest.raises(
            PluginValidationError,
            match="Missing required folder\\(s\\) in package 'blog': controllers, models",
        ):
            plugin_folders(plugins_dir, required_folders=["controllers", "views", "models"])


class TestManifest:
    def test_valid(self, plugins_dir) -> None:
        folder = make_plugin(plugins_dir, "blog", index=3, dependencies={"Core": "1.0.0"})
        manifest = read_manifest(folder)
        assert manifest.id == "blog"
        assert manifest.name == "Blog"
        assert manifest.index == 3
        assert manifest.dependencies == {"Core": "1.0.0"}
        assert manifest.data["author"] == "tests"

    def test_no_manifest(self, plugins_dir) -> None:
        (plugins_dir / "bare").mkdir()
        assert read_manifest(plugins_dir / "bare") is None

    @pytest.mark.parametrize("active", [False, "yes", 0])
    def test_inactive(self, plugins_dir, active) -> None:
        folder = make_plugin(plugins_dir, "off", active=active)
        assert read_manifest(folder) is None

    def test_invalid_json(self, plugins_dir) -> None:
        folder = make_plugin(plugins_dir, "broken", raw_manifest="{oops")
        with pytest.raises(PluginValidationError, match="Error decoding install.json"):
            read_manifest(folder)

    @pytest.mark.parametrize("field", ["version", "name", "author", "id"])
    def test_empty_required_field(self, plugins_dir, field: str) -> None:
        folder = make_plugin(plugins_dir, "blog", **{field: ""})
        with pytest.raises(PluginValidationError, match=f"'{field}' is empty"):
            read_manifest(folder)

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta"])
    def test_bad_version_format(self, plugins_dir, version: str) -> None:
        folder = make_plugin(plugins_dir, "blog", version=version)
        with pytest.raises(PluginValidationError, match="Invalid version format"):
            read_manifest(folder)

    def test_bad_index(self, plugins_dir) -> None:
        folder = make_plugin(plugins_dir, "blog", index="first")
        with pytest.raises(PluginValidationError, match="'index'"):
            read_manifest(folder)


class TestLoadOrder:
    def test_index_order_then_name(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "alpha", index=2)
        make_plugin(plugins_dir, "beta", index=1)
        make_plugin(plugins_dir, "gamma", index=1)
        make_plugin(plugins_dir, "delta")
        plugins = load_plugins(plugins_dir, recorder)
        assert recorder.calls == ["delta", "beta", "gamma", "alpha"]
        assert [p.name for p in plugins] == ["delta", "beta", "gamma", "alpha"]

    def test_inactive_and_unmanifested_skipped(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "on")
        make_plugin(plugins_dir, "off", active=False)
        (plugins_dir / "assets").mkdir()
        load_plugins(plugins_dir, recorder)
        assert recorder.calls == ["on"]

    def test_without_app_nothing_is_called(self, plugins_dir) -> None:
        make_plugin(plugins_dir, "solo", plugin_src="def register(app):\n    raise RuntimeError\n")
        [plugin] = load_plugins(plugins_dir)
        assert plugin.manifest.id == "solo"


class TestDependencies:
    def test_satisfied_by_name(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "core", index=1, version="1.2.0")
        make_plugin(plugins_dir, "blog", index=2, dependencies={"Core": "1.1.0"})
        load_plugins(plugins_dir, recorder)
        assert recorder.calls == ["core", "blog"]

    def test_satisfied_by_id(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "core", index=1)
        make_plugin(plugins_dir, "blog", index=2, dependencies={"core": "1.0"})
        load_plugins(plugins_dir, recorder)
        assert recorder.calls == ["core", "blog"]

    def test_missing(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "blog", dependencies={"Core": "1.0.0"})
        with pytest.raises(MissingDependency, match="Package 'blog' requires 'Core'"):
            load_plugins(plugins_dir, recorder)
        assert recorder.calls == []

    def test_dependency_must_load_earlier(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "core", index=5)
        make_plugin(plugins_dir, "blog", index=1, dependencies={"Core": "1.0.0"})
        with pytest.raises(MissingDependency):
            load_plugins(plugins_dir, recorder)

    def test_version_too_old(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "core", index=1, version="1.9.0")
        make_plugin(plugins_dir, "blog", index=2, dependencies={"Core": "1.10.0"})
        with pytest.raises(VersionMismatch) as exc_info:
            load_plugins(plugins_dir, recorder)
        assert str(exc_info.value) == (
            "Package 'blog' requires version 1.10.0 or higher of 'Core', "
            "but loaded version is 1.9.0"
        )
        assert recorder.calls == []

    def test_duplicate_id(self, plugins_dir, recorder) -> None:
        make_plugin(plugins_dir, "one", id="same")
        make_plugin(plugins_dir, "two", id="same")
        with pytest.raises(
            DuplicatePluginId,
            match="Duplicate id 'same' found in install.json for package 'two'",
        ):
            load_plugins(plugins_dir, recorder)


class TestImport:
    def test_missing_plugin_file(self, plugins_dir) -> None:
        make_plugin(plugins_dir, "empty", plugin_src="")
        with pytest.raises(PluginError, match="Plugin file 'plugin.py' not found"):
            load_plugins(plugins_dir)

    def test_import_failure_is_wrapped(self, plugins_dir) -> None:
        make_plugin(plugins_dir, "bad", plugin_src="import not_a_real_module_xyz\n")
        with pytest.raises(PluginError, match="Plugin 'bad' failed to import") as exc_info:
            load_plugins(plugins_dir)
        assert isinstance(exc_info.value.__cause__, ImportError)

    def test_relative_imports(self, plugins_dir, recorder) -> None:
        folder = make_plugin(
            plugins_dir,
            "shop",
            plugin_src=(
                "from .helpers import NAME\n\n"
                "def register(app):\n    app.calls.append(NAME)\n"
            ),
        )
        (folder / "helpers.py").write_text("NAME = 'from helpers'\n", encoding="utf-8")
        load_plugins(plugins_dir, recorder)
        assert recorder.calls == ["from helpers"]


class TestAppIntegration:
    async def test_plugin_registers_controller_and_routes(self, tmp_path) -> None:
        plugins = tmp_path / "plugins"
        folder = make_plugin(
            plugins,
            "blog",
            plugin_src=(
                "from nattix import Controller\n\n"
                "class BlogController(Controller):\n"
                "    def index(self, request, response):\n"
                "        return self.view.render('blog/index')\n\n"
                "def register(app):\n"
                "    app.controller(BlogController)\n"
            ),
            route_src="def routes(app):\n    app.get('/blog', 'BlogController@index')\n",
        )
        (folder / "templates" / "blog").mkdir(parents=True)
        (folder / "templates" / "blog" / "index.html").write_text(
            "<h1>Blog {{ 1 + 1 }}</h1>", encoding="utf-8"
        )

        app = App(AppConfig(root_dir=tmp_path))
        loaded = app.load_plugins()
        assert [p.name for p in loaded] == ["blog"]
        assert app.plugins == loaded

        async with TestClient(app) as client:
            response = await client.get("/blog")
        assert response.status == 200
        assert response.text == "<h1>Blog 2</h1>"
