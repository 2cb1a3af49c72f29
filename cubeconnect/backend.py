"""Abstract Bluetooth LE interfaces and the value types they exchange."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import AsyncIterator, Sequence
from uuid import UUID


class BluetoothError(Exception):
    """Base class for errors reported by a Bluetooth backend."""

    variant = "Other"
    default_message = "Bluetooth error"

    def __init__(self, message: str | None = None) -> None:
        self.detail = message
        super().__init__(message or self.default_message)

    def __repr__(self) -> str:
        if self.detail is None:
            return self.variant
        return f'{self.variant}("{self.detail}")'


class DeviceNotFoundError(BluetoothError):
    """No device with the requested name or id is known."""

    variant = "DeviceNotFound"
    default_message = "Device not found"


class NoSuchCharacteristicError(BluetoothError):
    """The device has no characteristic with the requested UUID."""

    variant = "NoSuchCharacteristic"
    default_message = "No such characteristic"


class NotSupportedError(BluetoothError):
    """The requested operation is not supported."""

    variant = "NotSupported"
    default_message = "Not supported"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class CharacteristicProperty(enum.Flag):
    """GATT characteristic property bits."""

    BROADCAST = 0x01
    READ = 0x02
    WRITE_WITHOUT_RESPONSE = 0x04
    WRITE = 0x08
    NOTIFY = 0x10
    INDICATE = 0x20
    AUTHENTICATED_SIGNED_WRITES = 0x40
    EXTENDED_PROPERTIES = 0x80


class CentralEventKind(enum.Enum):
    """Kinds of events an adapter reports."""

    DEVICE_DISCOVERED = "device-discovered"
    DEVICE_UPDATED = "device-updated"
    DEVICE_CONNECTED = "device-connected"
    DEVICE_DISCONNECTED = "device-disconnected"
    MANUFACTURER_DATA_ADVERTISEMENT = "manufacturer-data-advertisement"
    SERVICE_DATA_ADVERTISEMENT = "service-data-advertisement"
    SERVICES_ADVERTISEMENT = "services-advertisement"

    def is_discovery(self) -> bool:
        """Whether this event may change the list of discovered devices."""
        return self in _DISCOVERY_KINDS


_DISCOVERY_KINDS = frozenset(
    {
        CentralEventKind.DEVICE_DISCOVERED,
        CentralEventKind.DEVICE_UPDATED,
        CentralEventKind.MANUFACTURER_DATA_ADVERTISEMENT,
    }
)


@dataclass(frozen=True)
class CentralEvent:
    """An event emitted by an adapter about one peripheral."""

    kind: CentralEventKind
    peripheral_id: str
    manufacturer_data: dict[int, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class Characteristic:
    """A GATT characteristic."""

    uuid: UUID
    service_uuid: UUID
    properties: CharacteristicProperty = CharacteristicProperty(0)

    def supports(self, flag: CharacteristicProperty) -> bool:
        """Whether every bit of ``flag`` is set on this characteristic."""
        return flag in self.properties


@dataclass(frozen=True)
class Service:
    """A GATT service and its characteristics."""

    uuid: UUID
    primary: bool = True
    characteristics: tuple[Characteristic, ...] = ()


@dataclass
class PeripheralProperties:
    """Advertised properties of a peripheral."""

    address: str
    local_name: str | None = None
    rssi: int | None = None
    manufacturer_data: dict[int, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class ValueNotification:
    """A value pushed by a peripheral for a subscribed characteristic."""

    uuid: UUID
    value: bytes


class Peripheral(abc.ABC):
    """A remote Bluetooth LE device."""

    @property
    @abc.abstractmethod
    def id(self) -> str:
        """Stable identifier of the peripheral."""

    @abc.abstractmethod
    async def properties(self) -> PeripheralProperties | None:
        """Current advertised properties, or None when unknown."""

    @abc.abstractmethod
    async def connect(self) -> None:
        """Open a connection to the peripheral."""

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Close the connection to the peripheral."""

    @abc.abstractmethod
    async def discover_services(self) -> None:
        """Discover the peripheral's GATT services."""

    @abc.abstractmethod
    def services(self) -> Sequence[Service]:
        """Services found by the last discovery."""

    def characteristics(self) -> list[Characteristic]:
        """All characteristics of all discovered services."""
        return [c for service in self.services() for c in service.characteristics]

    @abc.abstractmethod
    async def read(self, characteristic: Characteristic) -> bytes:
        """Read the value of a characteristic."""

    @abc.abstractmethod
    async def write(
        self, characteristic: Characteristic, data: bytes, with_response: bool = True
    ) -> None:
        """Write a value to a characteristic."""

    @abc.abstractmethod
    async def subscribe(self, characteristic: Characteristic) -> None:
        """Enable notifications for a characteristic."""

    @abc.abstractmethod
    async def unsubscribe(self, characteristic: Characteristic) -> None:
        """Disable notifications for a characteristic."""

    @abc.abstractmethod
    async def notifications(self) -> AsyncIterator[ValueNotification]:
        """A stream of notifications from every subscribed characteristic."""


class Adapter(abc.ABC):
    """A local Bluetooth adapter."""

    @abc.abstractmethod
    async def peripherals(self) -> list[Peripheral]:
        """Peripherals the adapter currently knows about."""

    @abc.abstractmethod
    async def start_scan(self) -> None:
        """Start scanning for peripherals."""

    @abc.abstractmethod
    async def stop_scan(self) -> None:
        """Stop scanning for peripherals."""

    @abc.abstractmethod
    async def events(self) -> AsyncIterator[CentralEvent]:
        """A stream of adapter events."""


class Manager(abc.ABC):
    """Entry point giving access to the system's adapters."""

    @abc.abstractmethod
    async def adapters(self) -> list[Adapter]:
        """Available Bluetooth adapters."""