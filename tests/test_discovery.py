import pytest

from cubeconnect.backend import (
    Adapter,
    BluetoothError,
    CentralEvent,
    CentralEventKind,
    NotSupportedError,
    Peripheral,
    PeripheralProperties,
)
from cubeconnect.discovery import Discovery, collect_devices, discovery_stream
from cubeconnect.models import DiscoveredDevice

ADDRESS = "00:11:22:33:44:55"


def _resolved(value=None):
    async def method(self, *args, **kwargs):
        return value

    return method


async def _yield_all(items):
    for item in items:
        yield item


class FakePeripheral(Peripheral):
    connect = disconnect = discover_services = read = _resolved()
    write = subscribe = unsubscribe = _resolved()
    id = property(lambda self: self._id)

    def __init__(self, pid, properties=None, fail=False):
        self._id = pid
        self._properties = properties
        self._fail = fail

    async def properties(self):
        if self._fail:
            raise BluetoothError("properties unavailable")
        return self._properties

    def services(self):
        return []

    async def notifications(self):
        return _yield_all(())


class FakeAdapter(Adapter):
    def __init__(self, peripherals=(), events=(), fail_events=False, fail_peripherals=False):
        self._peripherals = list(peripherals)
        self._events = list(events)
        self.fail_events = fail_events
        self.fail_peripherals = fail_peripherals
        self.scans_started = 0
        self.scans_stopped = 0

    async def peripherals(self):
        if self.fail_peripherals:
            raise BluetoothError("adapter gone")
        return list(self._peripherals)

    async def start_scan(self):
        self.scans_started += 1

    async def stop_scan(self):
        self.scans_stopped += 1

    async def events(self):
        if self.fail_events:
            raise NotSupportedError("no events")
        return _yield_all(self._events)


def named(pid, name):
    return FakePeripheral(pid, PeripheralProperties(address=ADDRESS, local_name=name, rssi=-40))


@pytest.mark.asyncio
async def test_collect_devices_sorts_unnamed_first_then_by_name():
    adapter = FakeAdapter([named("p1", "beta"), FakePeripheral("p2"), named("p3", "alpha")])
    devices = await collect_devices(adapter)
    assert [d.id for d in devices] == ["p2", "p3", "p1"]
    assert [d.name for d in devices] == [None, "alpha", "beta"]


@pytest.mark.asyncio
async def test_collect_devices_describes_properties():
    adapter = FakeAdapter([named("p1", "cube"), FakePeripheral("p2")])
    unknown, cube = await collect_devices(adapter)
    assert (unknown.address, unknown.signal_strength, unknown.manufacturer_data) == (None, None, None)
    assert (cube.address, cube.signal_strength, cube.manufacturer_data) == (ADDRESS, -40, {})


@pytest.mark.asyncio
async def test_collect_devices_propagates_errors():
    adapter = FakeAdapter([FakePeripheral("p1", fail=True)])
    with pytest.raises(BluetoothError):
        await collect_devices(adapter)


@pytest.mark.asyncio
async def test_stream_yields_initial_then_one_list_per_discovery_event():
    kinds = [
        CentralEventKind.DEVICE_DISCOVERED,
        CentralEventKind.DEVICE_CONNECTED,
        CentralEventKind.DEVICE_UPDATED,
        CentralEventKind.MANUFACTURER_DATA_ADVERTISEMENT,
    ]
    adapter = FakeAdapter([named("p1", "cube")], [CentralEvent(kind, "p1") for kind in kinds])
    stream = await discovery_stream(adapter, [DiscoveredDevice.unknown("x")])
    batches = [batch async for batch in stream]
    assert len(batches) == 4
    assert batches[0][0].id == "x"
    assert all([d.name for d in batch] == ["cube"] for batch in batches[1:])


@pytest.mark.asyncio
async def test_stream_skips_events_that_fail():
    events = [CentralEvent(CentralEventKind.DEVICE_DISCOVERED, "p1")]
    adapter = FakeAdapter(events=events, fail_peripherals=True)
    stream = await discovery_stream(adapter, [])
    assert [batch async for batch in stream] == [[]]


@pytest.mark.asyncio
async def test_stream_reports_event_errors_up_front():
    with pytest.raises(NotSupportedError):
        await discovery_stream(FakeAdapter(fail_events=True), [])


@pytest.mark.asyncio
async def test_scan_runs_while_subscribed():
    adapter = FakeAdapter()
    discovery = Discovery(adapter)
    first = await discovery.subscribe()
    await discovery.subscribe()
    assert adapter.scans_started == 1
    assert discovery.subscriber_count == 2
    assert await anext(first) == []

    await discovery.unsubscribe()
    assert adapter.scans_stopped == 0
    await discovery.unsubscribe()
    assert adapter.scans_stopped == 1
    assert discovery.subscriber_count == 0


@pytest.mark.asyncio
async def test_resubscribing_restarts_scan():
    adapter = FakeAdapter()
    discovery = Discovery(adapter)
    await discovery.subscribe()
    await discovery.unsubscribe()
    await discovery.subscribe()
    assert adapter.scans_started == 2


@pytest.mark.asyncio
async def test_unsubscribe_without_subscribers_raises():
    with pytest.raises(RuntimeError):
        await Discovery(FakeAdapter()).unsubscribe()