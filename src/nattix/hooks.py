"""Named action hooks.

Plugins and application code attach callbacks to a hook name; firing
the hook runs them by ascending priority (registration order breaks
ties) and collects their return values::

    app.hooks.add_action("user_registered", send_welcome_mail, priority=5)
    results = await app.hooks.do_action("user_registered", user)
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from nattix._internal.invoke import invoke

DEFAULT_PRIORITY = 10


@dataclass(frozen=True, slots=True)
class Action:
    callback: Callable[..., Any]
    priority: int = DEFAULT_PRIORITY


class Hooks:
    """Registry of actions per hook name."""

    __slots__ = ("_actions",)

    def __init__(self) -> None:
        self._actions: dict[str, list[Action]] = {}

    def add_action(
        self, hook: str, callback: Callable[..., Any], priority: int = DEFAULT_PRIORITY
    ) -> None:
        self._actions.setdefault(hook, []).append(Action(callback, priority))

    def action(self, hook: str, priority: int = DEFAULT_PRIORITY) -> Callable[[Any], Any]:
        """Decorator form of ``add_action``."""

        def decorator(func: Any) -> Any:
            self.add_action(hook, func, priority)
            return func

        return decorator

    def remove_action(self, hook: str, callback: Callable[..., Any]) -> bool:
        actions = self._actions.get(hook, [])
        kept = [a for a in actions if a.callback is not callback]
        self._actions[hook] = kept
        return len(kept) != len(actions)

    def has_action(self, hook: str) -> bool:
        return bool(self._actions.get(hook))

    def actions(self, hook: str) -> list[Action]:
        """Actions for *hook* in run order."""
        return sorted(self._actions.get(hook, ()), key=lambda a: a.priority)

    async def do_action(self, hook: str, *args: Any) -> list[Any]:
        """Run every callback for *hook* and return their results in run order.

        An unknown hook returns an empty list.
        """
        return [await invoke(action.callback, *args) for action in self.actions(hook)]
