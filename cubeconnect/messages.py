"""Wire messages exchanged with websocket clients."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, Callable, ClassVar
from uuid import UUID

from cubeconnect.models import DeviceData, DiscoveredDevice

VERSION = 1


class MessageFormatError(ValueError):
    """A message could not be decoded."""


def _get(data: dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise MessageFormatError(f"missing field `{key}`") from None


def _string(data: dict[str, Any], key: str) -> str:
    value = _get(data, key)
    if not isinstance(value, str):
        raise MessageFormatError(f"field `{key}` must be a string")
    return value


def _uuid(data: dict[str, Any], key: str) -> UUID:
    text = _string(data, key)
    try:
        return UUID(text)
    except ValueError as exc:
        raise MessageFormatError(f"field `{key}` is not a valid UUID") from exc


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _byte_list(data: dict[str, Any], key: str) -> bytes:
    value = _get(data, key)
    if not isinstance(value, list) or not all(_is_int(b) and 0 <= b <= 255 for b in value):
        raise MessageFormatError(f"field `{key}` must be a list of bytes")
    return bytes(value)


def _u16(data: dict[str, Any], key: str) -> int:
    value = _get(data, key)
    if not _is_int(value) or not 0 <= value <= 0xFFFF:
        raise MessageFormatError(f"field `{key}` must be an unsigned 16-bit integer")
    return value


def _nested(loader: Callable[[Any], Any]) -> Callable[[dict[str, Any], str], Any]:
    def decode(data: dict[str, Any], key: str) -> Any:
        value = _get(data, key)
        try:
            return loader(value)
        except MessageFormatError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise MessageFormatError(f"field `{key}` is malformed: {exc!r}") from exc

    return decode


def _list_of(loader: Callable[[Any], Any]) -> Callable[[Any], list[Any]]:
    def decode(value: Any) -> list[Any]:
        if not isinstance(value, list):
            raise TypeError("expected a list")
        return [loader(item) for item in value]

    return decode


def _field(decoder: Callable[[dict[str, Any], str], Any]) -> Any:
    return field(metadata={"decode": decoder})


def _encode(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


class _Tagged:
    """A variant of a family of JSON objects told apart by a tag field."""

    TAG_KEY: ClassVar[str]
    KIND: ClassVar[str]
    TAG: ClassVar[str]
    _variants: ClassVar[dict[str, type[_Tagged]]]

    def __init_subclass__(cls, *, tag: str | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if tag is None:
            cls._variants = {}
        else:
            cls.TAG = tag
            cls._variants[tag] = cls

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {self.TAG_KEY: self.TAG}
        for f in fields(self):  # type: ignore[arg-type]
            result[f.name] = _encode(getattr(self, f.name))
        return result

    @classmethod
    def _decode(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise MessageFormatError(f"{cls.KIND} must be a JSON object")
        if cls.TAG_KEY not in data:
            raise MessageFormatError(f"missing field `{cls.TAG_KEY}`")
        tag = data[cls.TAG_KEY]
        if not isinstance(tag, str) or tag not in cls._variants:
            raise MessageFormatError(f"unknown {cls.KIND} variant `{tag}`")
        variant = cls._variants[tag]
        return variant(**{f.name: f.metadata["decode"](data, f.name) for f in fields(variant)})  # type: ignore[arg-type]


def _encode_as(value: Any, family: type[_Tagged]) -> dict[str, Any]:
    if not isinstance(value, family):
        raise TypeError(f"not a {family.KIND}: {value!r}")
    return value.to_dict()


@dataclass(frozen=True)
class _Named:
    name: str = _field(_string)


@dataclass(frozen=True)
class _CharacteristicTarget:
    device_name: str = _field(_string)
    characteristic_id: UUID = _field(_uuid)


@dataclass(frozen=True)
class _CharacteristicPayload(_CharacteristicTarget):
    value: bytes = _field(_byte_list)


# Requests


class _Request(_Tagged):
    TAG_KEY = "type"
    KIND = "request"


@dataclass(frozen=True)
class StartDiscovery(_Request, tag="start-discovery"):
    """Start streaming discovered devices."""


@dataclass(frozen=True)
class StopDiscovery(_Request, tag="stop-discovery"):
    """Stop streaming discovered devices."""


@dataclass(frozen=True)
class Connect(_Named, _Request, tag="connect"):
    """Connect to the device with the given name."""


@dataclass(frozen=True)
class Disconnect(_Named, _Request, tag="disconnect"):
    """Release a connection to the device with the given name."""


@dataclass(frozen=True)
class ReadCharacteristic(_CharacteristicTarget, _Request, tag="read-characteristic"):
    """Read a characteristic value."""


@dataclass(frozen=True)
class WriteCharacteristic(_CharacteristicPayload, _Request, tag="write-characteristic"):
    """Write a characteristic value."""


@dataclass(frozen=True)
class SubscribeToCharacteristic(_CharacteristicTarget, _Request, tag="subscribe-to-characteristic"):
    """Start streaming a characteristic's notifications."""


@dataclass(frozen=True)
class UnsubscribeFromCharacteristic(
    _CharacteristicTarget, _Request, tag="unsubscribe-from-characteristic"
):
    """Stop streaming a characteristic's notifications."""


@dataclass(frozen=True)
class Version(_Request, tag="version"):
    """Ask for the protocol version."""


Request = _Request


# Responses


class _Response(_Tagged):
    TAG_KEY = "result"
    KIND = "response"


@dataclass(frozen=True)
class OkResponse(_Response, tag="ok"):
    """The request succeeded."""


@dataclass(frozen=True)
class ErrorResponse(_Response, tag="error"):
    error: str = _field(_string)


@dataclass(frozen=True)
class ValueResponse(_Response, tag="value"):
    value: bytes = _field(_byte_list)


@dataclass(frozen=True)
class VersionResponse(_Response, tag="version"):
    version: int = _field(_u16)


@dataclass(frozen=True)
class ConnectedResponse(_Response, tag="connected"):
    device: DeviceData = _field(_nested(DeviceData.from_dict))


Response = _Response


# Broadcasts


class _Broadcast(_Tagged):
    TAG_KEY = "type"
    KIND = "broadcast"

    def __str__(self) -> str:
        return type(self).__name__.removesuffix("Broadcast")


@dataclass(frozen=True)
class DiscoveredDevicesBroadcast(_Broadcast, tag="discovered-devices"):
    devices: list[DiscoveredDevice] = _field(_nested(_list_of(DiscoveredDevice.from_dict)))


@dataclass(frozen=True)
class CharacteristicValueBroadcast(_CharacteristicPayload, _Broadcast, tag="characteristic-value"):
    """A notification value from a subscribed characteristic."""


@dataclass(frozen=True)
class DisconnectedBroadcast(_Named, _Broadcast, tag="disconnected"):
    """A device has been disconnected."""


Broadcast = _Broadcast


# Envelopes


class _Message(_Tagged):
    TAG_KEY = "type"
    KIND = "message"


@dataclass(frozen=True)
class RequestMessage(_Message, tag="request"):
    id: str = _field(_string)
    request: Request = _field(_nested(_Request._decode))


@dataclass(frozen=True)
class ResponseMessage(_Message, tag="response"):
    id: str = _field(_string)
    response: Response = _field(_nested(_Response._decode))


@dataclass(frozen=True)
class BroadcastMessage(_Message, tag="broadcast"):
    broadcast: Broadcast = _field(_nested(_Broadcast._decode))


@dataclass(frozen=True)
class ErrorMessage(_Message, tag="error"):
    message: str = _field(_string)


Message = _Message


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def request_from_dict(data: Any) -> Request:
    """Decode a request from its JSON object form."""
    return _Request._decode(data)


def request_to_dict(request: Request) -> dict[str, Any]:
    """Encode a request as a JSON object."""
    return _encode_as(request, _Request)


def response_to_dict(response: Response) -> dict[str, Any]:
    """Encode a response as a JSON object."""
    return _encode_as(response, _Response)


def response_from_dict(data: Any) -> Response:
    """Decode a response from its JSON object form."""
    return _Response._decode(data)


def broadcast_to_dict(broadcast: Broadcast) -> dict[str, Any]:
    """Encode a broadcast as a JSON object."""
    return _encode_as(broadcast, _Broadcast)


def parse_message(text: str) -> Message:
    """Decode a message from JSON text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MessageFormatError(f"invalid JSON: {exc}") from exc
    return _Message._decode(data)


def dump_message(message: Message) -> str:
    """Encode a message as compact JSON text."""
    return _dumps(_encode_as(message, _Message))


def dump_broadcast(broadcast: Broadcast) -> str:
    """Encode a bare broadcast as compact JSON text."""
    return _dumps(broadcast_to_dict(broadcast))