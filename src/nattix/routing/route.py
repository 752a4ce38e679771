"""Route, ControllerAction and RouteMatch frozen dataclasses."""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ControllerAction:
    """A controller class and the name of one of its methods.

    Built at registration time from ``"UserController@show"`` or
    ``(UserController, "show")``. The controller itself is only
    instantiated once a request matches.
    """

    controller: type
    action: str

    def __str__(self) -> str:
        return f"{self.controller.__name__}@{self.action}"


type Callback = Callable[..., Any] | ControllerAction


@dataclass(frozen=True, slots=True)
class Route:
    """A registered route.

    ``pattern`` is ``None`` only for the root path, which matches
    literally and is never scanned.
    """

    method: str
    path: str
    callback: Callback
    middlewares: tuple[Any, ...] = ()
    pattern: re.Pattern[str] | None = None
    param_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route: Route
    path_params: dict[str, str]
