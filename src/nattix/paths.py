"""Filesystem path joining rooted at a base directory."""

import os
from pathlib import Path


class PathResolver:
    """Join a base directory with relative segments.

    Leading slashes on segments are ignored so ``resolve("/routes")``
    stays inside the base::

        paths = PathResolver("/srv/app")
        paths.resolve("templates", "home.html")  # /srv/app/templates/home.html
    """

    __slots__ = ("base_path",)

    def __init__(self, base_path: str | Path = "") -> None:
        base = str(base_path)
        self.base_path = base.rstrip(os.sep) if base != os.sep else base

    def resolve(self, *paths: str) -> str:
        segments = [p.lstrip("/") for p in paths if p]
        if not segments:
            return self.base_path + os.sep
        return os.path.join(self.base_path, *segments)

    def routes_path(self) -> str:
        return self.resolve("routes")

    def assets_path(self) -> str:
        return self.resolve("public", "assets")

    def plugins_path(self) -> str:
        return self.resolve("plugins")

    def __repr__(self) -> str:
        return f"PathResolver({self.base_path!r})"
