import asyncio
from uuid import UUID

import pytest

from cubeconnect.backend import (
    Adapter,
    CentralEvent,
    Characteristic,
    CharacteristicProperty,
    DeviceNotFoundError,
    Manager,
    NoSuchCharacteristicError,
    NotSupportedError,
    Peripheral,
    PeripheralProperties,
    Service,
    ValueNotification,
)
from cubeconnect.bluetooth import Bluetooth, first_adapter

SERVICE_ID = UUID("0000fff0-0000-1000-8000-00805f9b34fb")
NOTIFY_ID = UUID("0000fff1-0000-1000-8000-00805f9b34fb")
READ_ID = UUID("0000fff2-0000-1000-8000-00805f9b34fb")
MISSING_ID = UUID("0000fff9-0000-1000-8000-00805f9b34fb")


class FakePeripheral(Peripheral):
    def __init__(self, pid, name, address="00:00:00:00:00:01", known=True):
        self._id = pid
        self._name = name
        self._address = address
        self._known = known
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.discovered = False
        self.values = {READ_ID: b"\x01\x02"}
        self.writes = []
        self.subscribe_calls = []
        self.unsubscribe_calls = []
        self._queues = []

    @property
    def id(self):
        return self._id

    async def properties(self):
        if not self._known:
            return None
        return PeripheralProperties(address=self._address, local_name=self._name, rssi=-40)

    async def connect(self):
        self.connect_calls += 1

    async def disconnect(self):
        self.disconnect_calls += 1

    async def discover_services(self):
        self.discovered = True

    def services(self):
        if not self.discovered:
            return []
        return [
            Service(
                uuid=SERVICE_ID,
                characteristics=(
                    Characteristic(NOTIFY_ID, SERVICE_ID, CharacteristicProperty.NOTIFY),
                    Characteristic(READ_ID, SERVICE_ID, CharacteristicProperty.READ),
                ),
            )
        ]

    async def read(self, characteristic):
        return self.values[characteristic.uuid]

    async def write(self, characteristic, data, with_response=True):
        self.writes.append((characteristic.uuid, data, with_response))

    async def subscribe(self, characteristic):
        self.subscribe_calls.append(characteristic.uuid)

    async def unsubscribe(self, characteristic):
        self.unsubscribe_calls.append(characteristic.uuid)

    async def notifications(self):
        queue = asyncio.Queue()
        self._queues.append(queue)

        async def gen():
            while True:
                yield await queue.get()

        return gen()

    def push(self, notification):
        for queue in self._queues:
            queue.put_nowait(notification)


class FakeAdapter(Adapter):
    def __init__(self, peripherals=()):
        self._peripherals = list(peripherals)
        self.start_calls = 0
        self.stop_calls = 0

    async def peripherals(self):
        return list(self._peripherals)

    async def start_scan(self):
        self.start_calls += 1

    async def stop_scan(self):
        self.stop_calls += 1

    async def events(self):
        queue = asyncio.Queue()

        async def gen():
            while True:
                event: CentralEvent = await queue.get()
                yield event

        return gen()


class FakeManager(Manager):
    def __init__(self, adapters):
        self._adapters = adapters

    async def adapters(self):
        return list(self._adapters)


def make(name="Cube"):
    peripheral = FakePeripheral("p1", name)
    adapter = FakeAdapter([FakePeripheral("p0", "Other"), peripheral])
    return Bluetooth(adapter), adapter, peripheral


@pytest.mark.asyncio
async def test_first_adapter_returns_first():
    first, second = FakeAdapter(), FakeAdapter()
    assert await first_adapter(FakeManager([first, second])) is first


@pytest.mark.asyncio
async def test_first_adapter_without_adapters():
    with pytest.raises(NotSupportedError, match="No Bluetooth adapters found"):
        await first_adapter(FakeManager([]))


@pytest.mark.asyncio
async def test_connect_describes_device():
    bluetooth, _, peripheral = make()
    data = await bluetooth.connect("Cube")
    assert data.id == "Cube"
    assert data.name == "Cube"
    assert [s.uuid for s in data.services] == [str(SERVICE_ID)]
    assert [c.uuid for c in data.services[0].characteristics] == [str(NOTIFY_ID), str(READ_ID)]
    assert peripheral.connect_calls == 1


@pytest.mark.asyncio
async def test_connect_unknown_device():
    bluetooth, _, _ = make()
    with pytest.raises(DeviceNotFoundError):
        await bluetooth.connect("Missing")


@pytest.mark.asyncio
async def test_connect_skips_peripherals_without_properties():
    hidden = FakePeripheral("p2", "Cube", known=False)
    bluetooth = Bluetooth(FakeAdapter([hidden]))
    with pytest.raises(DeviceNotFoundError):
        await bluetooth.connect("Cube")
    assert hidden.connect_calls == 0


@pytest.mark.asyncio
async def test_second_connect_reuses_connection():
    bluetooth, _, peripheral = make()
    first = await bluetooth.connect("Cube")
    second = await bluetooth.connect("Cube")
    assert first == second
    assert peripheral.connect_calls == 1
    assert bluetooth.connected_devices["Cube"].client_count == 2


@pytest.mark.asyncio
async def test_disconnect_after_last_client():
    bluetooth, _, peripheral = make()
    await bluetooth.connect("Cube")
    await bluetooth.connect("Cube")
    await bluetooth.disconnect("Cube")
    assert peripheral.disconnect_calls == 0
    assert "Cube" in bluetooth.connected_devices
    await bluetooth.disconnect("Cube")
    assert peripheral.disconnect_calls == 1
    assert "Cube" not in bluetooth.connected_devices
    with pytest.raises(DeviceNotFoundError):
        await bluetooth.disconnect("Cube")


@pytest.mark.asyncio
async def test_disconnect_unknown_device():
    bluetooth, _, _ = make()
    with pytest.raises(DeviceNotFoundError):
        await bluetooth.disconnect("Cube")


@pytest.mark.asyncio
async def test_read_characteristic():
    bluetooth, _, peripheral = make()
    await bluetooth.connect("Cube")
    assert await bluetooth.read_characteristic("Cube", READ_ID) == peripheral.values[READ_ID]


@pytest.mark.asyncio
async def test_read_missing_characteristic():
    bluetooth, _, _ = make()
    await bluetooth.connect("Cube")
    with pytest.raises(NoSuchCharacteristicError):
        await bluetooth.read_characteristic("Cube", MISSING_ID)


@pytest.mark.asyncio
async def test_read_without_connection():
    bluetooth, _, _ = make()
    with pytest.raises(DeviceNotFoundError):
        await bluetooth.read_characteristic("Cube", READ_ID)


@pytest.mark.asyncio
async def test_write_characteristic_with_response():
    bluetooth, _, peripheral = make()
    await bluetooth.connect("Cube")
    await bluetooth.write_characteristic("Cube", READ_ID, b"\x05\x06")
    assert peripheral.writes == [(READ_ID, b"\x05\x06", True)]


@pytest.mark.asyncio
async def test_subscribe_streams_matching_notifications():
    bluetooth, _, peripheral = make()
    await bluetooth.connect("Cube")
    stream = await bluetooth.subscribe_to_characteristic("Cube", NOTIFY_ID)
    peripheral.push(ValueNotification(READ_ID, b"\x00"))
    peripheral.push(ValueNotification(NOTIFY_ID, b"\x07"))
    received = await asyncio.wait_for(anext(stream), 1)
    assert received == ValueNotification(NOTIFY_ID, b"\x07")


@pytest.mark.asyncio
async def test_subscription_is_shared_between_subscribers():
    bluetooth, _, peripheral = make()
    await bluetooth.connect("Cube")
    await bluetooth.subscribe_to_characteristic("Cube", NOTIFY_ID)
    await bluetooth.subscribe_to_characteristic("Cube", NOTIFY_ID)
    assert peripheral.subscribe_calls == [NOTIFY_ID]
    await bluetooth.unsubscribe_from_characteristic("Cube", NOTIFY_ID)
    assert peripheral.unsubscribe_calls == []
    await bluetooth.unsubscribe_from_characteristic("Cube", NOTIFY_ID)
    assert peripheral.unsubscribe_calls == [NOTIFY_ID]


@pytest.mark.asyncio
async def test_subscribe_to_characteristic_without_notify():
    bluetooth, _, _ = make()
    await bluetooth.connect("Cube")
    with pytest.raises(NotSupportedError, match="does not support notifications"):
        await bluetooth.subscribe_to_characteristic("Cube", READ_ID)


@pytest.mark.asyncio
async def test_subscribe_after_disconnect():
    bluetooth, _, _ = make()
    await bluetooth.connect("Cube")
    await bluetooth.disconnect("Cube")
    with pytest.raises(DeviceNotFoundError):
        await bluetooth.subscribe_to_characteristic("Cube", NOTIFY_ID)


@pytest.mark.asyncio
async def test_discovery_starts_and_stops_scan():
    bluetooth, adapter, _ = make()
    stream = await bluetooth.subscribe_to_discovery()
    assert adapter.start_calls == 1
    assert await asyncio.wait_for(anext(stream), 1) == []
    await bluetooth.unsubscribe_from_discovery()
    assert adapter.stop_calls == 1