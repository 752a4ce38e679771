"""Template rendering with layouts, partials and asset tags.

A template ``<template_dir>/<name>.html`` is rendered by kida with the
assigned data. The result is then placed into the plain-text layout
``<template_dir>/<layout_dir>/<layout>.html`` (if it exists) by
substituting its placeholders::

    {{content}}      the rendered template
    {{stylesheets}}  one <link> per add_stylesheet(), prefixed with the asset URL
    {{scripts}}      one <script> per add_script()
    {{<name>}}       each partial registered with add_partial()

Layouts are not template-processed: only those placeholders change.
"""

import html
from collections.abc import Callable
from pathlib import Path
from typing import Any

from kida import ChoiceLoader, Environment, FileSystemLoader

from nattix.config import AppConfig
from nattix.http.response import Response


def create_environment(
    config: AppConfig,
    extra_dirs: list[Path] | None = None,
    filters: dict[str, Callable[..., Any]] | None = None,
    globals_: dict[str, Any] | None = None,
) -> Environment:
    """Build the kida environment for *config*.

    ``extra_dirs`` are searched after the app's own template directory,
    so plugins can ship templates without shadowing the app's.
    """
    loaders = [FileSystemLoader(str(config.path(config.template_dir)))]
    loaders.extend(FileSystemLoader(str(d)) for d in extra_dirs or ())
    env = Environment(
        loader=ChoiceLoader(loaders),
        autoescape=config.autoescape,
        auto_reload=config.debug,
    )
    if filters:
        env.update_filters(filters)
    for name, value in (globals_ or {}).items():
        env.add_global(name, value)
    return env


class Xview:
    """Per-controller view state: data, layout, partials and assets.

    Usage::

        view.assign("user", user)
        view.add_stylesheet("assets/css/site.css")
        return view.render("users/show")
    """

    __slots__ = (
        "_assets_css",
        "_assets_js",
        "_data",
        "_env",
        "_partials",
        "asset_url",
        "layout",
        "layouts_dir",
    )

    def __init__(
        self,
        env: Environment,
        layouts_dir: str | Path,
        *,
        layout: str = "default",
        asset_url: str = "/",
    ) -> None:
        self._env = env
        self.layouts_dir = Path(layouts_dir)
        self.layout = layout
        self.asset_url = asset_url
        self._data: dict[str, Any] = {}
        self._partials: dict[str, str] = {}
        self._assets_css: list[str] = []
        self._assets_js: list[str] = []

    @classmethod
    def from_config(cls, env: Environment, config: AppConfig) -> "Xview":
        return cls(
            env,
            config.path(config.template_dir) / config.layout_dir,
            layout=config.default_layout,
            asset_url=config.asset_url,
        )

    @property
    def data(self) -> dict[str, Any]:
        return dict(self._data)

    def assign(self, key: str, value: Any) -> None:
        self._data[key] = value

    def use_layout(self, name: str) -> None:
        self.layout = name

    def add_partial(self, name: str, markup: str) -> None:
        self._partials[name] = markup

    def add_stylesheet(self, path: str) -> None:
        self._assets_css.append(path)

    def add_script(self, path: str) -> None:
        self._assets_js.append(path)

    def render_content(self, template: str, **context: Any) -> str:
        """Render *template* (without extension) with the assigned data."""
        data = {**self._data, **context}
        return self._env.get_template(f"{template}.html").render(data)

    def render_page(self, template: str, **context: Any) -> str:
        content = self.render_content(template, **context)
        layout_path = self.layouts_dir / f"{self.layout}.html"
        if not layout_path.is_file():
            return content

        page = layout_path.read_text(encoding="utf-8").replace("{{content}}", content)
        for name, markup in self._partials.items():
            page = page.replace("{{" + name + "}}", markup)
        page = page.replace("{{stylesheets}}", self._stylesheet_tags())
        return page.replace("{{scripts}}", self._script_tags())

    def render(self, template: str, *, status: int = 200, **context: Any) -> Response:
        return Response(body=self.render_page(template, **context), status=status)

    def _stylesheet_tags(self) -> str:
        prefix = self.asset_url.rstrip("/") + "/"
        return "".join(
            f'<link rel="stylesheet" href="{html.escape(prefix + css.lstrip("/"))}">'
            for css in self._assets_css
        )

    def _script_tags(self) -> str:
        return "".join(f'<script src="{html.escape(js)}"></script>' for js in self._assets_js)
