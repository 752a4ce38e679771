"""Plugin discovery and loading.

Every immediate sub-folder of the plugins directory that holds an
``install.json`` is a plugin candidate::

    plugins/
      blog/
        install.json   {"id": "blog", "name": "Blog", "author": "...",
                        "version": "1.2.0", "index": 2,
                        "dependencies": {"Core": "1.0.0"}}
        plugin.py      required; may define register(app)
        route.py       optional; may define routes(app)
        controllers/   anything plugin.py imports relatively

Plugins whose ``active`` flag is present and not ``true`` are skipped.
The rest are validated, ordered by ``index`` and imported in that
order. Each plugin folder is imported as its own package, so
``plugin.py`` can use relative imports (``from .controllers import ...``).
"""

import importlib
import importlib.util
import json
import logging
import re
import sys
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

from nattix.errors import NattixError

logger = logging.getLogger("nattix.plugins")

MANIFEST = "install.json"
ENTRY_MODULE = "plugin.py"
ROUTES_MODULE = "route.py"
REQUIRED_FIELDS = ("version", "name", "author", "id")
VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


class PluginError(NattixError):
    """Base for plugin loading failures."""


class PluginValidationError(PluginError):
    """An install.json is unreadable or breaks a manifest rule."""


class DuplicatePluginId(PluginValidationError):  # noqa: N818
    def __init__(self, plugin_id: str, folder: str) -> None:
        self.plugin_id = plugin_id
        super().__init__(f"Duplicate id '{plugin_id}' found in install.json for package '{folder}'")


class MissingDependency(PluginValidationError):  # noqa: N818
    def __init__(self, folder: str, dependency: str) -> None:
        self.dependency = dependency
        super().__init__(f"Package '{folder}' requires '{dependency}', but it is not loaded")


class VersionMismatch(PluginValidationError):  # noqa: N818
    def __init__(self, folder: str, dependency: str, required: str, loaded: str) -> None:
        self.dependency = dependency
        self.required = required
        self.loaded = loaded
        super().__init__(
            f"Package '{folder}' requires version {required} or higher of "
            f"'{dependency}', but loaded version is {loaded}"
        )


@dataclass(frozen=True, slots=True)
class PluginManifest:
    """The validated contents of an install.json."""

    id: str
    name: str
    author: str
    version: str
    index: int = 0
    active: bool = True
    dependencies: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Plugin:
    """A loaded plugin."""

    folder: Path
    manifest: PluginManifest
    module: ModuleType
    routes: ModuleType | None = None

    @property
    def name(self) -> str:
        return self.folder.name


def parse_version(version: str) -> tuple[int, ...]:
    """``"1.10.2"`` -> ``(1, 10, 2)``. Shorter versions compare as zero-padded."""
    try:
        parts = tuple(int(part) for part in str(version).split("."))
    except ValueError:
        msg = f"Invalid version {version!r}"
        raise PluginValidationError(msg) from None
    return parts + (0,) * (3 - len(parts))


def plugin_folders(
    plugins_dir: Path,
    *,
    filter: Callable[[Path], bool] | None = None,  # noqa: A002
    required_folders: Iterable[str] = (),
) -> list[Path]:
    """Immediate sub-folders of *plugins_dir*, by name.

    Raises ``PluginValidationError`` when a folder lacks one of
    *required_folders*.
    """
    if not plugins_dir.is_dir():
        msg = f"Plugins folder not found: {plugins_dir}"
        raise PluginError(msg)
    required = tuple(required_folders)
    folders: list[Path] = []
    for folder in sorted(p for p in plugins_dir.iterdir() if p.is_dir()):
        if folder.name.startswith((".", "__")):
            continue
        if filter is not None and not filter(folder):
            continue
        missing = [name for name in required if not (folder / name).is_dir()]
        if missing:
            msg = f"Missing required folder(s) in package '{folder.name}': {', '.join(missing)}"
            raise PluginValidationError(msg)
        folders.append(folder)
    return folders


def read_manifest(folder: Path) -> PluginManifest | None:
    """Parse and validate *folder*'s install.json.

    Returns ``None`` when there is no manifest or the plugin is inactive.
    """
    path = folder / MANIFEST
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"Error decoding install.json for package '{folder.name}': {exc}"
        raise PluginValidationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"install.json for package '{folder.name}' must contain a JSON object"
        raise PluginValidationError(msg)

    if "active" in data and data["active"] is not True:
        return None

    for name in REQUIRED_FIELDS:
        if not data.get(name):
            msg = f"'{name}' is empty in install.json for package '{folder.name}'"
            raise PluginValidationError(msg)

    version = data["version"]
    if not isinstance(version, str) or not VERSION_PATTERN.match(version):
        msg = (
            f"Invalid version format in install.json for package '{folder.name}'. "
            "The version must follow the format x.y.z, where x, y, and z are "
            "non-negative integers"
        )
        raise PluginValidationError(msg)

    dependencies = data.get("dependencies") or {}
    if not isinstance(dependencies, Mapping):
        msg = f"'dependencies' in install.json for package '{folder.name}' must be an object"
        raise PluginValidationError(msg)

    index = data.get("index") or 0
    if isinstance(index, bool) or not isinstance(index, int):
        msg = f"'index' in install.json for package '{folder.name}' must be an integer"
        raise PluginValidationError(msg)

    return PluginManifest(
        id=str(data["id"]),
        name=str(data["name"]),
        author=str(data["author"]),
        version=version,
        index=index,
        dependencies={str(k): str(v) for k, v in dependencies.items()},
        data=data,
    )


def check_dependencies(
    folder: Path, manifest: PluginManifest, loaded: Mapping[str, PluginManifest]
) -> None:
    """Every dependency must be loaded already, at the required version or newer.

    *loaded* maps plugin names (and ids) to their manifests.
    """
    for dependency, required in manifest.dependencies.items():
        found = loaded.get(dependency)
        if found is None:
            raise MissingDependency(folder.name, dependency)
        if parse_version(found.version) < parse_version(required):
            raise VersionMismatch(folder.name, dependency, required, found.version)


def _module_name(manifest: PluginManifest) -> str:
    return "nattix_plugin_" + re.sub(r"\W", "_", manifest.id)


def import_plugin(folder: Path, manifest: PluginManifest) -> tuple[ModuleType, ModuleType | None]:
    """Import ``plugin.py`` as a package rooted at *folder*, then ``route.py``."""
    entry = folder / ENTRY_MODULE
    if not entry.is_file():
        msg = f"Plugin file '{ENTRY_MODULE}' not found in package '{folder.name}'"
        raise PluginError(msg)

    name = _module_name(manifest)
    spec = importlib.util.spec_from_file_location(
        name, entry, submodule_search_locations=[str(folder)]
    )
    if spec is None or spec.loader is None:
        msg = f"Cannot import {entry}"
        raise PluginError(msg)
    module = importlib.util.module_from_spec(spec)
    for stale in [key for key in sys.modules if key.startswith(f"{name}.")]:
        del sys.modules[stale]
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
        routes = None
        if (folder / ROUTES_MODULE).is_file():
            routes = importlib.import_module(f"{name}.{ROUTES_MODULE.removesuffix('.py')}")
    except Exception as exc:
        sys.modules.pop(name, None)
        msg = f"Plugin '{folder.name}' failed to import: {exc}"
        raise PluginError(msg) from exc
    return module, routes


def load_plugins(
    plugins_dir: str | Path,
    app: Any = None,
    *,
    filter: Callable[[Path], bool] | None = None,  # noqa: A002
    required_folders: Iterable[str] = (),
) -> list[Plugin]:
    """Validate, order and import every active plugin under *plugins_dir*.

    Manifests are read first, then sorted by ``index`` (folder name
    breaks ties). Walking that order, ids must be unique and each
    dependency must name a plugin earlier in the order. Only then are
    the modules imported, calling ``register(app)`` from ``plugin.py``
    and ``routes(app)`` from ``route.py`` when defined.
    """
    folders = plugin_folders(Path(plugins_dir), filter=filter, required_folders=required_folders)

    candidates: list[tuple[Path, PluginManifest]] = []
    for folder in folders:
        manifest = read_manifest(folder)
        if manifest is None:
            logger.debug("Skipping %s: no install.json or inactive", folder.name)
            continue
        candidates.append((folder, manifest))
    candidates.sort(key=lambda item: (item[1].index, item[0].name))

    seen_ids: set[str] = set()
    loaded: dict[str, PluginManifest] = {}
    for folder, manifest in candidates:
        if manifest.id in seen_ids:
            raise DuplicatePluginId(manifest.id, folder.name)
        check_dependencies(folder, manifest, loaded)
        seen_ids.add(manifest.id)
        loaded[manifest.name] = manifest
        loaded.setdefault(manifest.id, manifest)

    plugins: list[Plugin] = []
    for folder, manifest in candidates:
        module, routes = import_plugin(folder, manifest)
        register = getattr(module, "register", None)
        if app is not None and callable(register):
            register(app)
        define_routes = getattr(routes, "routes", None)
        if app is not None and callable(define_routes):
            define_routes(app)
        plugins.append(Plugin(folder=folder, manifest=manifest, module=module, routes=routes))
        logger.info("Loaded plugin %s %s (%s)", manifest.name, manifest.version, manifest.id)
    return plugins
