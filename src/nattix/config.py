"""Application configuration.

Two layers:

- ``AppConfig`` is a frozen dataclass of framework settings, immutable
  after creation and read through typed attributes.
- ``Config`` is a read-only mapping of free-form application settings
  merged from several sources (``configs/config.json``, ``NATTIX_*``
  environment variables, explicit dicts). Later sources win per key.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nattix.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Framework configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, database_url="sqlite:///app.db")
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False

    # Security
    secret_key: str = ""
    cookie_secret: str = ""

    # Layout of the project on disk
    root_dir: str | Path = "."
    template_dir: str | Path = "templates"
    layout_dir: str = "layouts"
    default_layout: str = "default"
    asset_url: str = "/"
    plugins_dir: str | Path = "plugins"
    log_dir: str | Path | None = None

    # Controllers referenced as "Name@action" resolve against this
    # registry namespace (used only in error messages and repr).
    controller_namespace: str = "controllers"

    # Database
    database_url: str | None = None
    db_echo: bool = False

    # Templates
    autoescape: bool = True

    def path(self, value: str | Path) -> Path:
        """Resolve *value* against ``root_dir`` unless it is absolute."""
        p = Path(value)
        if p.is_absolute():
            return p
        return Path(self.root_dir) / p


ENV_PREFIX = "NATTIX_"


class Config(Mapping[str, Any]):
    """Read-only application settings.

    Usage::

        config = Config.from_root("/srv/app")
        config["DB_HOST"]
        config.get("MISSING")  # None
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    @classmethod
    def merge(cls, *sources: Mapping[str, Any]) -> Config:
        """Merge *sources* left-to-right; later sources win per key."""
        merged: dict[str, Any] = {}
        for source in sources:
            merged.update(source)
        return cls(merged)

    @classmethod
    def from_root(
        cls,
        root: str | Path,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> Config:
        """Load ``<root>/configs/config.json`` and ``NATTIX_*`` variables.

        Environment variables win over the JSON file. The prefix is
        stripped: ``NATTIX_DB_HOST`` becomes ``DB_HOST``.
        """
        return cls.merge(
            load_json_config(Path(root) / "configs" / "config.json"),
            env_settings(os.environ if environ is None else environ),
        )

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __repr__(self) -> str:
        return f"Config({sorted(self._data)!r})"


def load_json_config(path: Path) -> dict[str, Any]:
    """Read a JSON object from *path*, or ``{}`` if the file is absent."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in {path}: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path} must contain a JSON object, got {type(data).__name__}"
        raise ConfigurationError(msg)
    return data


def env_settings(environ: Mapping[str, str]) -> dict[str, str]:
    return {
        key[len(ENV_PREFIX) :]: value
        for key, value in environ.items()
        if key.startswith(ENV_PREFIX) and len(key) > len(ENV_PREFIX)
    }
