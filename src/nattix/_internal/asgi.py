"""ASGI type aliases.

Raw ``Scope`` / ``Receive`` / ``Send`` shapes as defined by ASGI 3.0.
Only ``nattix.server`` and ``nattix.testing`` touch these directly;
application code works with ``Request`` and ``Response``.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any, TypeAlias

Scope: TypeAlias = MutableMapping[str, Any]
Message: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[Message]]
Send: TypeAlias = Callable[[Message], Awaitable[None]]
