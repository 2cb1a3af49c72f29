# cubeconnect

An asyncio library for a local WebSocket proxy that lets a web application
talk to Bluetooth Low Energy devices (such as smart cubes). Through the
proxy a client can scan for devices, connect to them by name, read and write
GATT characteristics and receive characteristic notifications as JSON
messages.

## What is in the package

- `cubeconnect.backend` defines the Bluetooth side as abstract classes
  (`Manager`, `Adapter`, `Peripheral`), the value types they exchange
  (`Service`, `Characteristic`, `CharacteristicProperty`,
  `PeripheralProperties`, `CentralEvent`, `ValueNotification`) and the errors
  (`BluetoothError`, `DeviceNotFoundError`, `NoSuchCharacteristicError`,
  `NotSupportedError`).
- `cubeconnect.models` holds the device descriptions sent to clients:
  `DiscoveredDevice`, `DeviceData`, `ServiceData`, `CharacteristicData`.
- `cubeconnect.messages` encodes and decodes the JSON protocol
  (`parse_message`, `dump_message`, `dump_broadcast` and the request,
  response and broadcast classes).
- `cubeconnect.discovery.Discovery` scans while at least one subscriber is
  interested and yields lists of discovered devices, sorted by name.
- `cubeconnect.notifications.Notifications` enables a characteristic's
  notifications for its first subscriber and disables them after the last.
- `cubeconnect.connected_device.ConnectedDevice` is a connected peripheral
  with its services and client count.
- `cubeconnect.bluetooth.Bluetooth` connects to devices by local name and
  shares each connection between clients, disconnecting only when the last
  client leaves. `first_adapter(manager)` picks the first adapter a manager
  reports.
- `cubeconnect.connection.Connection` serves one client: it answers
  requests and forwards discovery results and notifications through a send
  callback.
- `cubeconnect.server.Server` accepts WebSocket clients and checks each
  client's `Origin` header.

## What it does not do

The package contains no concrete Bluetooth backend: `Manager`, `Adapter` and
`Peripheral` are abstract, and you must supply implementations for your
platform. It also has no command-line program, no tray icon and no window;
you start the server from your own code.

## Running a server

```python
import asyncio

from cubeconnect.bluetooth import Bluetooth, first_adapter
from cubeconnect.server import Server, listen_address


async def serve(manager, argv):
    adapter = await first_adapter(manager)   # manager: your Manager implementation
    server = Server(Bluetooth(adapter), listen_address(argv))
    await server.run()
```

`listen_address(argv)` returns the first element of `argv` when there is one,
and `127.0.0.1:17430` otherwise. `Server.start()` runs the server as a task
on the running event loop; `Server.started` is set and `Server.bound_address`
filled in once it listens.

## Allowed origins

A connection is accepted only when the host in its `Origin` header is one of:

- `localhost`
- `127.0.0.1`
- `app.cubeast.com`
- `app.staging.cubeast.com`

Other origins, and requests without an `Origin` header, are refused with HTTP
403. When the `ALLOW_ANY_ORIGIN` environment variable is set (to any value),
every origin is accepted. `origin_allowed(origin, allow_any)` applies the same
rule.

## Protocol

Every frame is a JSON text message. A request carries an `id` that the
response echoes back:

```json
{"type": "request", "id": "1", "request": {"type": "connect", "name": "GAN-cube"}}
```

```json
{"type": "response", "id": "1", "response": {"result": "connected", "device": {"id": "GAN-cube", "name": "GAN-cube", "services": []}}}
```

Request types:

| `type`                             | fields                                             |
|------------------------------------|----------------------------------------------------|
| `start-discovery`                  |                                                    |
| `stop-discovery`                   |                                                    |
| `connect`                          | `name`                                             |
| `disconnect`                       | `name`                                             |
| `read-characteristic`              | `device_name`, `characteristic_id`                 |
| `write-characteristic`             | `device_name`, `characteristic_id`, `value`        |
| `subscribe-to-characteristic`      | `device_name`, `characteristic_id`                 |
| `unsubscribe-from-characteristic`  | `device_name`, `characteristic_id`                 |
| `version`                          |                                                    |

`characteristic_id` is a UUID string and `value` is a list of byte values.

Responses are tagged by `result`: `ok`, `error` (with `error`), `value`
(with `value`), `version` (with `version`, currently `1`) and `connected`
(with `device`). Failures are reported as `error` responses, for example
`"Failed to connect to device: DeviceNotFound"`, and `stop-discovery`
without a running discovery answers `"Discovery is not running"`.

While discovery or a subscription is active, the connection pushes
broadcasts as bare JSON objects:

```json
{"type": "discovered-devices", "devices": [{"id": "dev-1", "name": "GAN-cube", "address": "00:00:00:00:00:01", "signal_strength": -60, "manufacturer_data": {"1": [1, 2]}}]}
{"type": "characteristic-value", "device_name": "GAN-cube", "characteristic_id": "0000fff6-0000-1000-8000-00805f9b34fb", "value": [1, 2, 3]}
```

A frame that is not text is answered with
`{"type": "error", "message": "Invalid message format"}`; text that is not a
valid message with `"Invalid message format or type: …"`; and a valid
message that is not a request with `"Request expected"`.

## Development

The tests use pytest and pytest-asyncio; install the `test` extra to get
them.