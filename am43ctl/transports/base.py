"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

NotificationHandler = Callable[[bytes], None]
ConnectionListener = Callable[[bool], None]


class Characteristic(Protocol):
    async def subscribe(self, handler: NotificationHandler) -> None:
        """Enable notifications and route every inbound payload to handler."""

    async def write(self, data: bytes, *, with_response: bool) -> None:
        """Write data to the characteristic."""


class BLETransport(Protocol):
    @property
    def is_connected(self) -> bool: ...

    def set_connection_listener(self, listener: ConnectionListener | None) -> None:
        """Register the callback invoked with True/False on link up/down."""

    async def connect(self) -> None:
        """Open the link to the peripheral."""

    async def discover_characteristics(
        self,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> Sequence[Characteristic]:
        """Return the characteristics matching the ids, possibly empty."""

    async def disconnect(self) -> None:
        """Close the link to the peripheral."""
