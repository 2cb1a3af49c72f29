"""Reference-counted characteristic notifications for one peripheral."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator
from uuid import UUID

from cubeconnect.backend import (
    Characteristic,
    CharacteristicProperty,
    NoSuchCharacteristicError,
    NotSupportedError,
    Peripheral,
    ValueNotification,
)

NotificationStream = AsyncIterator[ValueNotification]


async def _matching(
    notifications: AsyncIterator[ValueNotification], characteristic_id: UUID
) -> NotificationStream:
    async for notification in notifications:
        if notification.uuid == characteristic_id:
            yield notification


async def notification_stream(peripheral: Peripheral, characteristic_id: UUID) -> NotificationStream:
    """The peripheral's notifications for one characteristic only."""
    notifications = await peripheral.notifications()
    return _matching(notifications, characteristic_id)


class Notifications:
    """Enables a characteristic's notifications for its first subscriber and
    disables them after its last one unsubscribes."""

    def __init__(self, peripheral: Peripheral) -> None:
        self._peripheral = peripheral
        self._subscribers: dict[UUID, int] = {}
        self._lock = asyncio.Lock()
        self._stopped = False

    def subscriber_count(self, characteristic_id: UUID) -> int:
        return self._subscribers.get(characteristic_id, 0)

    def _ensure_running(self) -> None:
        if self._stopped:
            raise RuntimeError("notifications have been stopped")

    def _characteristic(self, characteristic_id: UUID) -> Characteristic:
        found = next(
            (c for c in self._peripheral.characteristics() if c.uuid == characteristic_id),
            None,
        )
        if found is None:
            raise NoSuchCharacteristicError()
        return found

    async def subscribe(self, characteristic_id: UUID) -> NotificationStream:
        """Add a subscriber and return its stream of notifications."""
        async with self._lock:
            self._ensure_running()
            self._subscribers[characteristic_id] = self._subscribers.get(characteristic_id, 0) + 1
            if self._subscribers[characteristic_id] == 1:
                characteristic = self._characteristic(characteristic_id)
                if not characteristic.supports(CharacteristicProperty.NOTIFY):
                    raise NotSupportedError("Characteristic does not support notifications")
                await self._peripheral.subscribe(characteristic)
            return await notification_stream(self._peripheral, characteristic_id)

    async def unsubscribe(self, characteristic_id: UUID) -> None:
        """Remove a subscriber; unknown characteristics are ignored."""
        async with self._lock:
            self._ensure_running()
            if characteristic_id not in self._subscribers:
                return
            self._subscribers[characteristic_id] -= 1
            if self._subscribers[characteristic_id] == 0:
                characteristic = self._characteristic(characteristic_id)
                await self._peripheral.unsubscribe(characteristic)
                del self._subscribers[characteristic_id]

    async def stop(self) -> None:
        """Stop accepting subscription changes."""
        async with self._lock:
            self._ensure_running()
            self._stopped = True