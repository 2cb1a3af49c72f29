"""A connected peripheral together with its clients and notifications."""

from __future__ import annotations

from dataclasses import dataclass

from cubeconnect.backend import DeviceNotFoundError, Peripheral, Service
from cubeconnect.models import DiscoveredDevice
from cubeconnect.notifications import Notifications


@dataclass
class ConnectedDevice:
    """A peripheral shared between clients, with its services by UUID string."""

    peripheral: Peripheral
    device: DiscoveredDevice
    services: dict[str, Service]
    notifications: Notifications
    client_count: int = 0

    @classmethod
    async def start(cls, peripheral: Peripheral, device_name: str) -> ConnectedDevice:
        """Discover the services of a connected peripheral."""
        properties = await peripheral.properties()
        if properties is None:
            raise DeviceNotFoundError()
        device = DiscoveredDevice.from_properties(device_name, properties)
        await peripheral.discover_services()
        services = {str(service.uuid): service for service in peripheral.services()}
        return cls(
            peripheral=peripheral,
            device=device,
            services=services,
            notifications=Notifications(peripheral),
        )

    def add_client(self) -> None:
        self.client_count += 1

    def remove_client(self) -> None:
        if self.client_count > 0:
            self.client_count -= 1

    def has_no_clients(self) -> bool:
        return self.client_count == 0