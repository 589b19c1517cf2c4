"""BLE GATT transport implementation."""

from __future__ import annotations

import logging
from typing import Any

from am43ctl.core.errors import (
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from am43ctl.transports.base import ConnectionListener, NotificationHandler

LOGGER = logging.getLogger(__name__)


def _normalize_uuid(value: str) -> str:
    from bleak.uuids import normalize_uuid_str  # type: ignore

    return normalize_uuid_str(value)


class BleakCharacteristic:
    def __init__(self, client: Any, characteristic: Any) -> None:
        self._client = client
        self._characteristic = characteristic

    @property
    def uuid(self) -> str:
        return self._characteristic.uuid

    async def subscribe(self, handler: NotificationHandler) -> None:
        def _notify_handler(_: Any, data: bytearray) -> None:
            handler(bytes(data))

        try:
            await self._client.start_notify(self._characteristic, _notify_handler)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"Timed out subscribing to {self.uuid}") from exc
        except Exception as exc:
            raise TransportSendError(f"BLE subscribe failed on {self.uuid}: {exc}") from exc

    async def write(self, data: bytes, *, with_response: bool) -> None:
        try:
            await self._client.write_gatt_char(
                self._characteristic,
                data,
                response=with_response,
            )
        except TimeoutError as exc:
            raise TransportTimeoutError(f"Timed out writing to {self.uuid}") from exc
        except Exception as exc:
            raise TransportSendError(f"BLE GATT write failed: {exc}") from exc


class BleakTransport:
    """Single-peripheral transport backed by a ``bleak.BleakClient``."""

    def __init__(self, address: str, *, timeout_s: float = 10.0) -> None:
        self.address = address
        self.timeout_s = timeout_s
        self._client: Any | None = None
        self._listener: ConnectionListener | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def set_connection_listener(self, listener: ConnectionListener | None) -> None:
        self._listener = listener

    def _notify_listener(self, connected: bool) -> None:
        if self._listener is not None:
            self._listener(connected)

    def _on_disconnect(self, _: Any) -> None:
        LOGGER.debug("BLE link to %s dropped", self.address)
        self._client = None
        self._notify_listener(False)

    async def connect(self) -> None:
        try:
            from bleak import BleakClient  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            raise TransportConnectError(
                "BLE transport requires 'bleak'. Install dependency and retry."
            ) from exc

        client = BleakClient(
            self.address,
            disconnected_callback=self._on_disconnect,
            timeout=self.timeout_s,
        )
        try:
            await client.connect()
        except TimeoutError as exc:
            raise TransportTimeoutError(f"BLE connect timed out for {self.address}") from exc
        except Exception as exc:
            raise TransportConnectError(f"BLE connect failed for {self.address}: {exc}") from exc

        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {self.address}")
        self._client = client
        self._notify_listener(True)

    async def discover_characteristics(
        self,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> list[BleakCharacteristic]:
        client = self._client
        if client is None:
            raise TransportConnectError(f"Not connected to {self.address}")

        service = client.services.get_service(_normalize_uuid(service_uuid))
        if service is None:
            LOGGER.debug("Service %s not found on %s", service_uuid, self.address)
            return []

        wanted = _normalize_uuid(characteristic_uuid)
        return [
            BleakCharacteristic(client, characteristic)
            for characteristic in service.characteristics
            if characteristic.uuid.lower() == wanted
        ]

    async def disconnect(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:
            raise TransportSendError(f"BLE disconnect failed for {self.address}: {exc}") from exc
