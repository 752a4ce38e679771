"""Routing: ordered per-method route tables with placeholder patterns.

Routes are registered during setup and frozen when the app handles its
first request.
"""

from nattix.routing.route import ControllerAction, Route, RouteMatch
from nattix.routing.router import Router, compile_path

__all__ = ["ControllerAction", "Route", "RouteMatch", "Router", "compile_path"]
