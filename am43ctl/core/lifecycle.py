"""Connect, discover and subscribe sequence for the blind control characteristic."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from am43ctl.core.errors import TransportConnectError, TransportError
from am43ctl.core.model import LinkState, ProtocolConstants
from am43ctl.transports.base import BLETransport, Characteristic, NotificationHandler

LOGGER = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Owns the link state and the resolved control characteristic.

    Concurrent ``ensure_ready`` callers share one in-flight connect and one
    in-flight discovery instead of issuing duplicate GATT operations.
    """

    def __init__(
        self,
        transport: BLETransport,
        on_notification: NotificationHandler,
        *,
        constants: ProtocolConstants | None = None,
        settle_delay_s: float = 0.2,
        description: str = "",
        on_connection_change: Callable[[bool], None] | None = None,
    ) -> None:
        self.transport = transport
        self.constants = constants or ProtocolConstants()
        self.settle_delay_s = settle_delay_s
        self.description = description
        self._on_notification = on_notification
        self._on_connection_change = on_connection_change
        self._connected = False
        self._characteristic: Characteristic | None = None
        self._connect_task: asyncio.Future[None] | None = None
        self._discover_task: asyncio.Future[None] | None = None
        # Bumped by disconnect so that stale in-flight work cannot commit.
        self._epoch = 0
        transport.set_connection_listener(self._handle_connection_change)

    @property
    def state(self) -> LinkState:
        if self.is_ready:
            return LinkState.READY
        if self._connected:
            return LinkState.DISCOVERING
        if self._connect_task is not None:
            return LinkState.CONNECTING
        return LinkState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def characteristic(self) -> Characteristic | None:
        return self._characteristic

    @property
    def is_ready(self) -> bool:
        return self._connected and self._characteristic is not None

    def _handle_connection_change(self, connected: bool) -> None:
        LOGGER.debug(
            "%s: device %s", self.description, "connected" if connected else "disconnected"
        )
        changed = connected != self._connected
        self._connected = connected
        if not connected:
            self._epoch += 1
            self._characteristic = None
        if changed and self._on_connection_change is not None:
            self._on_connection_change(connected)

    async def ensure_ready(self) -> bool:
        if self.is_ready:
            return True

        if not self._connected:
            if not await self._join(self._connect_task_for(), "connect"):
                return False

            # Connection events may trail the connect call.
            await asyncio.sleep(self.settle_delay_s)
            if not self._connected:
                LOGGER.debug("%s: not connected after settle delay", self.description)
                return False

        if self._characteristic is None:
            if not await self._join(self._discover_task_for(), "discovery"):
                return False

        return self.is_ready

    def _connect_task_for(self) -> asyncio.Future[None]:
        if self._connect_task is None:
            self._connect_task = asyncio.ensure_future(self.transport.connect())
        else:
            LOGGER.debug("%s: already connecting, waiting for connection", self.description)
        return self._connect_task

    def _discover_task_for(self) -> asyncio.Future[None]:
        if self._discover_task is None:
            LOGGER.debug("%s: discovering control characteristic", self.description)
            self._discover_task = asyncio.ensure_future(self._discover(self._epoch))
        else:
            LOGGER.debug("%s: already discovering, waiting for discovery", self.description)
        return self._discover_task

    async def _join(self, task: asyncio.Future[Any], what: str) -> bool:
        try:
            await asyncio.shield(task)
            return True
        except TransportError as exc:
            LOGGER.warning("%s: %s failed: %s", self.description, what, exc)
            return False
        finally:
            if self._connect_task is task:
                self._connect_task = None
            if self._discover_task is task:
                self._discover_task = None

    async def _discover(self, epoch: int) -> None:
        characteristics = await self.transport.discover_characteristics(
            self.constants.service_uuid,
            self.constants.characteristic_uuid,
        )
        if not characteristics:
            raise TransportConnectError(
                f"characteristic {self.constants.characteristic_uuid} not found "
                f"in service {self.constants.service_uuid}"
            )
        if epoch != self._epoch:
            LOGGER.debug("%s: discarding discovery result after disconnect", self.description)
            return

        characteristic = characteristics[0]
        try:
            await characteristic.subscribe(self._on_notification)
            LOGGER.debug("%s: subscribed to notifications", self.description)
        except TransportError as exc:
            LOGGER.warning("%s: failed to subscribe to notifications: %s", self.description, exc)
        if epoch != self._epoch:
            return
        self._characteristic = characteristic

    async def disconnect(self) -> None:
        LOGGER.debug("%s: disconnecting", self.description)
        self._connect_task = None
        self._discover_task = None
        self._handle_connection_change(False)
        try:
            await self.transport.disconnect()
        except TransportError as exc:
            LOGGER.warning("%s: disconnect failed: %s", self.description, exc)
