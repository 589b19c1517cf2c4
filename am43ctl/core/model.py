"""Core data models shared by the codec, device engine, service and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class Direction(IntEnum):
    CLOSING = 0
    OPENING = 1
    STOPPED = 2


class LinkState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    DISCOVERING = "discovering"
    READY = "ready"


class DeviceEvent(str, Enum):
    POSITION = "position"
    DIRECTION = "direction"
    TARGET_POSITION = "targetPosition"
    BATTERY_PERCENTAGE = "batteryPercentage"
    LIGHT_LEVEL = "lightLevel"
    CONNECTION = "connection"


@dataclass(frozen=True)
class ProtocolConstants:
    """Wire constants of the AM43 vendor protocol."""

    service_uuid: str = "fe50"
    characteristic_uuid: str = "fe51"
    command_prefix: bytes = b"\x00\xff\x00\x00\x9a"
    set_move: int = 0x0A
    set_position: int = 0x0D
    get_position: int = 0xA7
    get_light_sensor: int = 0xAA
    get_battery_status: int = 0xA2
    notify_position: int = 0xA1
    move_open: int = 0xDD
    move_close: int = 0xEE
    move_stop: int = 0xCC
    response_ack: int = 0x5A
    response_nack: int = 0xA5
    history_length: int = 6


@dataclass(frozen=True)
class TimingSettings:
    settle_delay_s: float = 0.2
    poll_interval_s: float = 1.0
    write_timeout_s: float | None = 10.0
    connect_timeout_s: float = 10.0


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    protocol: ProtocolConstants = field(default_factory=ProtocolConstants)
    timing: TimingSettings = field(default_factory=TimingSettings)
    write_with_response: bool = True


@dataclass(frozen=True)
class NotificationFrame:
    command_id: int
    fields: dict[str, int]
    raw: bytes


@dataclass(frozen=True)
class DeviceIdentity:
    id: str
    name: str
    address: str | None
    description: str

    @classmethod
    def build(
        cls,
        address: str | None,
        name: str | None = None,
        device_id: str | None = None,
    ) -> DeviceIdentity:
        if name:
            resolved_name = name
        elif address:
            resolved_name = address
        else:
            resolved_name = f"AM43 Blind {device_id}" if device_id else "AM43 Blind"

        resolved_id = device_id or address or resolved_name
        address_desc = address if address is not None else resolved_id
        return cls(
            id=resolved_id,
            name=resolved_name,
            address=address,
            description=f"{resolved_name} ({address_desc})",
        )


@dataclass
class DeviceState:
    """Mutable blind state owned by a single device instance."""

    position: int | None = None
    target_position: int | None = None
    direction: Direction = Direction.STOPPED
    battery_percentage: int | None = None


@dataclass(frozen=True)
class StatusReport:
    identity: DeviceIdentity
    position: int | None
    direction: Direction
    battery_percentage: int | None
    light_level: int | None
