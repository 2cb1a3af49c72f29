"""Access to Bluetooth devices shared between any number of clients."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from cubeconnect.backend import (
    Adapter,
    Characteristic,
    DeviceNotFoundError,
    Manager,
    NoSuchCharacteristicError,
    NotSupportedError,
    Peripheral,
)
from cubeconnect.connected_device import ConnectedDevice
from cubeconnect.discovery import Discovery, DiscoveryStream
from cubeconnect.models import DeviceData
from cubeconnect.notifications import NotificationStream

logger = logging.getLogger(__name__)


async def first_adapter(manager: Manager) -> Adapter:
    """The first adapter the manager reports."""
    adapters = await manager.adapters()
    if not adapters:
        raise NotSupportedError("No Bluetooth adapters found")
    return adapters[0]


class Bluetooth:
    """Connects to devices by name and shares each connection between clients.

    Operations are handled one at a time, in the order they are requested.
    """

    def __init__(self, adapter: Adapter) -> None:
        self._adapter = adapter
        self._discovery = Discovery(adapter)
        self._connected: dict[str, ConnectedDevice] = {}
        self._lock = asyncio.Lock()

    @property
    def connected_devices(self) -> dict[str, ConnectedDevice]:
        """Connected devices by name."""
        return dict(self._connected)

    async def subscribe_to_discovery(self) -> DiscoveryStream:
        """Start receiving lists of discovered devices."""
        async with self._lock:
            return await self._discovery.subscribe()

    async def unsubscribe_from_discovery(self) -> None:
        """Stop receiving lists of discovered devices."""
        async with self._lock:
            await self._discovery.unsubscribe()

    async def connect(self, name: str) -> DeviceData:
        """Connect to the device with this local name, or join its connection."""
        async with self._lock:
            existing = self._connected.get(name)
            if existing is not None:
                logger.info("Reusing existing connection to %s", name)
                existing.add_client()
                return DeviceData.from_connected_device(existing)

            for peripheral in await self._adapter.peripherals():
                properties = await peripheral.properties()
                if properties is None or properties.local_name != name:
                    continue
                logger.info("Found device: %s", name)
                await peripheral.connect()
                logger.info("Connected to %s", name)
                device = await ConnectedDevice.start(peripheral, name)
                device.add_client()
                self._connected[name] = device
                return DeviceData.from_connected_device(device)

            raise DeviceNotFoundError()

    async def disconnect(self, name: str) -> None:
        """Leave a device's connection, closing it after the last client."""
        async with self._lock:
            device = self._connected.get(name)
            if device is None:
                logger.error("No connected device found with ID: %s", name)
                raise DeviceNotFoundError()
            device.remove_client()
            if not device.has_no_clients():
                return
            del self._connected[name]
            logger.info("Disconnected from %s", name)
            await device.notifications.stop()
            await device.peripheral.disconnect()

    def _device(self, device_name: str) -> ConnectedDevice:
        device = self._connected.get(device_name)
        if device is None:
            raise DeviceNotFoundError()
        return device

    def _characteristic(
        self, device_name: str, characteristic_id: UUID
    ) -> tuple[Peripheral, Characteristic]:
        peripheral = self._device(device_name).peripheral
        characteristic = next(
            (c for c in peripheral.characteristics() if c.uuid == characteristic_id),
            None,
        )
        if characteristic is None:
            raise NoSuchCharacteristicError()
        return peripheral, characteristic

    async def read_characteristic(self, device_name: str, characteristic_id: UUID) -> bytes:
        """Read a characteristic of a connected device."""
        async with self._lock:
            peripheral, characteristic = self._characteristic(device_name, characteristic_id)
            return await peripheral.read(characteristic)

    async def write_characteristic(
        self, device_name: str, characteristic_id: UUID, value: bytes
    ) -> None:
        """Write a characteristic of a connected device, waiting for the response."""
        async with self._lock:
            peripheral, characteristic = self._characteristic(device_name, characteristic_id)
            await peripheral.write(characteristic, bytes(value), with_response=True)

    async def subscribe_to_characteristic(
        self, device_name: str, characteristic_id: UUID
    ) -> NotificationStream:
        """Start receiving notifications of a characteristic."""
        async with self._lock:
            device = self._device(device_name)
            return await device.notifications.subscribe(characteristic_id)

    async def unsubscribe_from_characteristic(
        self, device_name: str, characteristic_id: UUID
    ) -> None:
        """Stop receiving notifications of a characteristic."""
        async with self._lock:
            device = self._device(device_name)
            await device.notifications.unsubscribe(characteristic_id)