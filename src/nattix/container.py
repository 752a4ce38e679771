"""Service container.

A small service locator with explicit factory registration and
constructor auto-wiring::

    container = Container()

    # Explicit factories receive the container
    container.singleton("db", lambda c: Database(c.make("config").get("DB_URL")))

    # Classes are auto-wired from their __init__ signature
    container.bind(Mailer, SmtpMailer)
    mailer = container.make(Mailer, host="localhost")

Resolution order for ``make(name)``:

1. Follow the alias chain.
2. Return the cached singleton instance, if any.
3. Build the binding: non-class callables are called with the container,
   classes are constructed by introspecting ``__init__`` parameters.
4. An unbound *class* is auto-wired directly; an unbound string name
   raises ``BindingNotFound``.

Circular bindings are not detected: a binding that (indirectly)
resolves itself recurses until Python's recursion limit.
"""

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar, get_type_hints, overload

from nattix.errors import NattixError

T = TypeVar("T")

type Abstract = str | type


class ContainerError(NattixError):
    """Base for container resolution failures."""


class BindingNotFound(ContainerError):
    """No binding (and no class to auto-wire) exists for a name."""

    def __init__(self, name: Abstract) -> None:
        self.name = name
        super().__init__(f"Binding for '{_display(name)}' not found.")


class UnresolvableDependency(ContainerError):
    """A constructor parameter could not be satisfied."""

    def __init__(self, concrete: Abstract, parameter: str) -> None:
        self.concrete = concrete
        self.parameter = parameter
        super().__init__(
            f"Unable to resolve dependency '{parameter}' of '{_display(concrete)}'"
        )


def _display(name: Abstract) -> str:
    if isinstance(name, type):
        return f"{name.__module__}.{name.__qualname__}"
    return name


# Parameter annotations the container never tries to build.
_PRIMITIVES: frozenset[type] = frozenset({str, int, float, bool, bytes, list, dict, tuple, set})


@dataclass(slots=True)
class _Binding:
    concrete: Any
    shared: bool


class Container:
    """Bindings, cached singletons, and aliases."""

    __slots__ = ("_aliases", "_bindings", "_instances")

    def __init__(self) -> None:
        self._bindings: dict[Abstract, _Binding] = {}
        self._instances: dict[Abstract, Any] = {}
        self._aliases: dict[Abstract, Abstract] = {}

    # -- Registration --

    def bind(self, name: Abstract, concrete: Any = None, *, singleton: bool = False) -> None:
        """Register *concrete* (a factory or a class) under *name*.

        ``concrete`` defaults to *name* itself, so ``bind(Service)``
        registers an auto-wired class. Rebinding drops any cached instance.
        """
        if concrete is None:
            concrete = name
        if not callable(concrete):
            msg = f"Concrete for '{_display(name)}' must be a class or a callable"
            raise ContainerError(msg)
        self._bindings[name] = _Binding(concrete, singleton)
        self._instances.pop(name, None)

    def singleton(self, name: Abstract, concrete: Any = None) -> None:
        """Register a binding that is built once and cached."""
        self.bind(name, concrete, singleton=True)

    def instance(self, name: Abstract, obj: Any) -> None:
        """Register an already-built object as a singleton."""
        self._instances[name] = obj

    def alias(self, name: Abstract, alias_name: Abstract) -> None:
        """Make *alias_name* resolve to *name*."""
        if alias_name == name:
            msg = f"'{_display(name)}' cannot be aliased to itself"
            raise ContainerError(msg)
        self._aliases[alias_name] = name

    def factory(self, name: Abstract, *, singleton: bool = False) -> Callable[[T], T]:
        """Register the decorated function as the factory for *name*.

        Usage::

            @container.factory("mailer", singleton=True)
            def make_mailer(c: Container) -> Mailer:
                return Mailer(c.make("config")["SMTP_HOST"])
        """

        def decorator(func: T) -> T:
            self.bind(name, func, singleton=singleton)
            return func

        return decorator

    # -- Lookup --

    def resolve_alias(self, name: Abstract) -> Abstract:
        while name in self._aliases:
            name = self._aliases[name]
        return name

    def has(self, name: Abstract) -> bool:
        name = self.resolve_alias(name)
        return name in self._instances or name in self._bindings

    @overload
    def make(self, name: type[T], /, **params: Any) -> T: ...
    @overload
    def make(self, name: str, /, **params: Any) -> Any: ...

    def make(self, name: Abstract, /, **params: Any) -> Any:
        """Resolve *name*, building it if needed.

        Keyword *params* are matched against constructor parameter
        names when a class is auto-wired. Singletons built with params
        are cached like any other.
        """
        name = self.resolve_alias(name)

        if name in self._instances:
            return self._instances[name]

        binding = self._bindings.get(name)
        if binding is None:
            if isinstance(name, type):
                return self.build(name, params)
            raise BindingNotFound(name)

        obj = self.build(binding.concrete, params)
        if binding.shared:
            self._instances[name] = obj
        return obj

    def forget(self, name: Abstract) -> None:
        """Drop a cached singleton so the next ``make()`` rebuilds it."""
        self._instances.pop(self.resolve_alias(name), None)

    # -- Building --

    def build(self, concrete: Any, params: dict[str, Any] | None = None) -> Any:
        """Build *concrete*: call a factory, or auto-wire a class."""
        params = params or {}
        if not isinstance(concrete, type):
            return concrete(self)

        if inspect.isabstract(concrete):
            msg = f"Class '{_display(concrete)}' is not instantiable."
            raise ContainerError(msg)

        init = concrete.__init__
        if init is object.__init__:
            return concrete()

        args = self._resolve_parameters(concrete, init, params)
        return concrete(**args)

    def _resolve_parameters(
        self,
        concrete: type,
        init: Callable[..., Any],
        params: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            hints = get_type_hints(init)
        except (NameError, TypeError):
            hints = {}

        kwargs: dict[str, Any] = {}
        parameters = list(inspect.signature(init).parameters.values())[1:]
        for param in parameters:
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            name = param.name
            if name in params:
                kwargs[name] = params[name]
                continue

            annotation = hints.get(name, param.annotation)
            has_default = param.default is not inspect.Parameter.empty
            if (
                isinstance(annotation, type)
                and annotation not in _PRIMITIVES
                and annotation is not inspect.Parameter.empty
            ):
                try:
                    kwargs[name] = self.make(annotation)
                except ContainerError:
                    if not has_default:
                        raise
                    kwargs[name] = param.default
            elif has_default:
                kwargs[name] = param.default
            else:
                raise UnresolvableDependency(concrete, name)
        return kwargs

    def __contains__(self, name: object) -> bool:
        return isinstance(name, (str, type)) and self.has(name)
