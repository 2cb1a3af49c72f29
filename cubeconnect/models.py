"""Device descriptions exchanged with clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cubeconnect.backend import Characteristic, PeripheralProperties, Service


@dataclass
class CharacteristicData:
    """A characteristic as reported to clients."""

    uuid: str

    @classmethod
    def from_characteristic(cls, characteristic: Characteristic) -> CharacteristicData:
        return cls(uuid=str(characteristic.uuid))

    def to_dict(self) -> dict[str, Any]:
        return {"uuid": self.uuid}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CharacteristicData:
        return cls(uuid=data["uuid"])


@dataclass
class ServiceData:
    """A service and its characteristics as reported to clients."""

    uuid: str
    characteristics: list[CharacteristicData] = field(default_factory=list)

    @classmethod
    def from_service(cls, service: Service) -> ServiceData:
        return cls(
            uuid=str(service.uuid),
            characteristics=[
                CharacteristicData.from_characteristic(c) for c in service.characteristics
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uuid": self.uuid,
            "characteristics": [c.to_dict() for c in self.characteristics],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceData:
        return cls(
            uuid=data["uuid"],
            characteristics=[CharacteristicData.from_dict(c) for c in data["characteristics"]],
        )


@dataclass
class DeviceData:
    """A connected device as reported to clients."""

    id: str
    name: str | None = None
    services: list[ServiceData] = field(default_factory=list)

    @classmethod
    def from_connected_device(cls, device: Any) -> DeviceData:
        """Describe a connected device holding ``device`` and ``services``."""
        return cls(
            id=str(device.device.id),
            name=device.device.name,
            services=[ServiceData.from_service(s) for s in device.services.values()],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "services": [s.to_dict() for s in self.services],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceData:
        return cls(
            id=data["id"],
            name=data.get("name"),
            services=[ServiceData.from_dict(s) for s in data["services"]],
        )


@dataclass(eq=False)
class DiscoveredDevice:
    """A device seen during discovery.

    Two devices are equal when name, address and manufacturer data match;
    the id and signal strength are not compared.
    """

    id: str
    name: str | None = None
    address: str | None = None
    signal_strength: int | None = None
    manufacturer_data: dict[int, bytes] | None = None

    @classmethod
    def from_properties(
        cls, device_id: str, properties: PeripheralProperties
    ) -> DiscoveredDevice:
        return cls(
            id=device_id,
            name=properties.local_name,
            address=str(properties.address),
            signal_strength=properties.rssi,
            manufacturer_data=dict(properties.manufacturer_data),
        )

    @classmethod
    def unknown(cls, device_id: str) -> DiscoveredDevice:
        """A device whose properties are not known."""
        return cls(id=device_id)

    def to_dict(self) -> dict[str, Any]:
        manufacturer = (
            None
            if self.manufacturer_data is None
            else {str(k): list(v) for k, v in self.manufacturer_data.items()}
        )
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "signal_strength": self.signal_strength,
            "manufacturer_data": manufacturer,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiscoveredDevice:
        raw = data.get("manufacturer_data")
        manufacturer = None if raw is None else {int(k): bytes(v) for k, v in raw.items()}
        return cls(
            id=data["id"],
            name=data.get("name"),
            address=data.get("address"),
            signal_strength=data.get("signal_strength"),
            manufacturer_data=manufacturer,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiscoveredDevice):
            return NotImplemented
        return (
            self.name == other.name
            and self.address == other.address
            and self.manufacturer_data == other.manufacturer_data
        )