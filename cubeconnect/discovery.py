"""Bluetooth device discovery shared between any number of subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable

from cubeconnect.backend import Adapter, BluetoothError, CentralEvent
from cubeconnect.models import DiscoveredDevice

logger = logging.getLogger(__name__)

DiscoveryStream = AsyncIterator[list[DiscoveredDevice]]


def _name_key(device: DiscoveredDevice) -> tuple[bool, str]:
    # Devices without a name sort before named ones.
    return (device.name is not None, device.name or "")


async def collect_devices(adapter: Adapter) -> list[DiscoveredDevice]:
    """Describe every peripheral the adapter knows, sorted by name."""
    devices = []
    for peripheral in await adapter.peripherals():
        properties = await peripheral.properties()
        device_id = str(peripheral.id)
        if properties is None:
            devices.append(DiscoveredDevice.unknown(device_id))
        else:
            devices.append(DiscoveredDevice.from_properties(device_id, properties))
    devices.sort(key=_name_key)
    return devices


async def _device_lists(
    adapter: Adapter,
    initial: list[DiscoveredDevice],
    events: AsyncIterator[CentralEvent],
) -> DiscoveryStream:
    yield initial
    async for event in events:
        if not event.kind.is_discovery():
            continue
        try:
            devices = await collect_devices(adapter)
        except BluetoothError as err:
            logger.warning("Error handling central event: %r", err)
            continue
        yield devices


async def discovery_stream(
    adapter: Adapter, initial: Iterable[DiscoveredDevice]
) -> DiscoveryStream:
    """A stream of device lists: ``initial`` first, then one per discovery event."""
    events = await adapter.events()
    return _device_lists(adapter, list(initial), events)


class Discovery:
    """Scans while at least one subscriber is interested in discovered devices."""

    def __init__(self, adapter: Adapter) -> None:
        self._adapter = adapter
        self._devices: list[DiscoveredDevice] = []
        self._subscribers = 0
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return self._subscribers

    async def subscribe(self) -> DiscoveryStream:
        """Register a subscriber, starting the scan for the first one."""
        async with self._lock:
            self._subscribers += 1
            if self._subscribers == 1:
                logger.debug("First subscriber, starting discovery")
                logger.info("Starting discovery")
                await self._adapter.start_scan()
            return await discovery_stream(self._adapter, list(self._devices))

    async def unsubscribe(self) -> None:
        """Remove a subscriber, stopping the scan after the last one."""
        async with self._lock:
            if self._subscribers == 0:
                raise RuntimeError("discovery has no subscribers")
            self._subscribers -= 1
            if self._subscribers == 0:
                logger.debug("No more subscribers, stopping discovery")
                logger.info("Stopping discovery")
                await self._adapter.stop_scan()