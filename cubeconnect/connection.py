"""One websocket client's session: requests in, responses and broadcasts out."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, Awaitable, Callable, Union
from uuid import UUID

from cubeconnect.backend import BluetoothError
from cubeconnect.bluetooth import Bluetooth
from cubeconnect.discovery import DiscoveryStream
from cubeconnect.messages import (
    VERSION,
    Broadcast,
    CharacteristicValueBroadcast,
    Connect,
    ConnectedResponse,
    Disconnect,
    DiscoveredDevicesBroadcast,
    ErrorMessage,
    ErrorResponse,
    Message,
    MessageFormatError,
    OkResponse,
    ReadCharacteristic,
    Request,
    RequestMessage,
    Response,
    ResponseMessage,
    StartDiscovery,
    StopDiscovery,
    SubscribeToCharacteristic,
    UnsubscribeFromCharacteristic,
    ValueResponse,
    Version,
    VersionResponse,
    WriteCharacteristic,
    dump_broadcast,
    dump_message,
    parse_message,
)
from cubeconnect.notifications import NotificationStream

logger = logging.getLogger(__name__)

Send = Callable[[str], Awaitable[None]]
Incoming = Union[str, bytes]


class Connection:
    """Serves one client: answers its requests and forwards the broadcasts it
    subscribed to through ``send``."""

    def __init__(self, bluetooth: Bluetooth, send: Send) -> None:
        self._bluetooth = bluetooth
        self._send = send
        self._send_lock = asyncio.Lock()
        self._discovery_task: asyncio.Task[None] | None = None
        self._notification_tasks: dict[tuple[str, UUID], asyncio.Task[None]] = {}

    @property
    def discovery_running(self) -> bool:
        return self._discovery_task is not None

    @property
    def subscriptions(self) -> set[tuple[str, UUID]]:
        """Characteristics whose notifications are forwarded, by device name."""
        return set(self._notification_tasks)

    async def run(self, incoming: AsyncIterable[Incoming]) -> None:
        """Answer every message from ``incoming``, then stop all forwarding."""
        try:
            async for message in incoming:
                await self.handle_text(message)
            logger.info("Websocket message stream ended")
        finally:
            await self.close()

    async def handle_text(self, text: Incoming) -> Message:
        """Answer one incoming websocket message and return the reply sent."""
        reply = await self._reply(text)
        try:
            await self._write(dump_message(reply))
        except Exception as err:
            logger.error("Failed to send websocket message: %r", err)
        return reply

    async def _reply(self, text: Incoming) -> Message:
        if not isinstance(text, str):
            return ErrorMessage(message="Invalid message format")
        try:
            message = parse_message(text)
        except MessageFormatError as err:
            return ErrorMessage(message=f"Invalid message format or type: {err!r}")
        if not isinstance(message, RequestMessage):
            return ErrorMessage(message="Request expected")
        response = await self.handle_request(message.request)
        return ResponseMessage(id=message.id, response=response)

    async def handle_request(self, request: Request) -> Response:
        """Carry out one request and describe its outcome."""
        bluetooth = self._bluetooth
        if isinstance(request, StartDiscovery):
            return await self._start_discovery()
        if isinstance(request, StopDiscovery):
            return self._stop_discovery()
        if isinstance(request, Connect):
            try:
                device = await bluetooth.connect(request.name)
            except BluetoothError as err:
                return ErrorResponse(error=f"Failed to connect to device: {err!r}")
            return ConnectedResponse(device=device)
        if isinstance(request, Disconnect):
            try:
                await bluetooth.disconnect(request.name)
            except BluetoothError as err:
                return ErrorResponse(error=f"Failed to disconnect from device: {err!r}")
            return OkResponse()
        if isinstance(request, ReadCharacteristic):
            try:
                value = await bluetooth.read_characteristic(
                    request.device_name, request.characteristic_id
                )
            except BluetoothError as err:
                return ErrorResponse(error=f"Failed to read characteristic: {err!r}")
            return ValueResponse(value=bytes(value))
        if isinstance(request, WriteCharacteristic):
            try:
                await bluetooth.write_characteristic(
                    request.device_name, request.characteristic_id, request.value
                )
            except BluetoothError:
                return ErrorResponse(error="Failed to write characteristic")
            return OkResponse()
        if isinstance(request, SubscribeToCharacteristic):
            return await self._subscribe(request.device_name, request.characteristic_id)
        if isinstance(request, UnsubscribeFromCharacteristic):
            return await self._unsubscribe(request.device_name, request.characteristic_id)
        if isinstance(request, Version):
            return VersionResponse(version=VERSION)
        raise TypeError(f"not a request: {request!r}")

    async def close(self) -> None:
        """Stop forwarding discovery results and notifications."""
        tasks = list(self._notification_tasks.values())
        if self._discovery_task is not None:
            tasks.append(self._discovery_task)
        self._discovery_task = None
        self._notification_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _write(self, text: str) -> None:
        async with self._send_lock:
            await self._send(text)

    async def _broadcast(self, broadcast: Broadcast) -> None:
        try:
            await self._write(dump_broadcast(broadcast))
        except Exception as err:
            logger.warning("Failed to send %s to client: %r", broadcast, err)

    async def _start_discovery(self) -> Response:
        try:
            stream = await self._bluetooth.subscribe_to_discovery()
        except BluetoothError as err:
            logger.error("Failed to start discovery: %r", err)
            return ErrorResponse(error="Failed to start discovery")
        if self._discovery_task is not None:
            self._discovery_task.cancel()
        self._discovery_task = asyncio.create_task(self._forward_devices(stream))
        return OkResponse()

    def _stop_discovery(self) -> Response:
        task = self._discovery_task
        if task is None:
            return ErrorResponse(error="Discovery is not running")
        self._discovery_task = None
        if task.done():
            logger.error("Failed to abort discovery: it has already ended")
        else:
            task.cancel()
        return OkResponse()

    async def _forward_devices(self, stream: DiscoveryStream) -> None:
        async for devices in stream:
            await self._broadcast(DiscoveredDevicesBroadcast(devices=devices))

    async def _subscribe(self, device_name: str, characteristic_id: UUID) -> Response:
        try:
            stream = await self._bluetooth.subscribe_to_characteristic(
                device_name, characteristic_id
            )
        except BluetoothError as err:
            return ErrorResponse(error=f"Failed to subscribe to characteristic: {err!r}")
        key = (device_name, characteristic_id)
        previous = self._notification_tasks.get(key)
        if previous is not None:
            previous.cancel()
        self._notification_tasks[key] = asyncio.create_task(
            self._forward_notifications(stream, device_name, characteristic_id)
        )
        return OkResponse()

    async def _unsubscribe(self, device_name: str, characteristic_id: UUID) -> Response:
        try:
            await self._bluetooth.unsubscribe_from_characteristic(device_name, characteristic_id)
        except BluetoothError:
            return ErrorResponse(error="Failed to unsubscribe characteristic")
        task = self._notification_tasks.pop((device_name, characteristic_id), None)
        if task is not None:
            task.cancel()
        return OkResponse()

    async def _forward_notifications(
        self, stream: NotificationStream, device_name: str, characteristic_id: UUID
    ) -> None:
        async for notification in stream:
            await self._broadcast(
                CharacteristicValueBroadcast(
                    device_name=device_name,
                    characteristic_id=characteristic_id,
                    value=bytes(notification.value),
                )
            )