"""Websocket server that lets allowed web origins use the Bluetooth proxy."""

from __future__ import annotations

import asyncio
import logging
import os
from http import HTTPStatus
from typing import Sequence
from urllib.parse import urlsplit

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from cubeconnect.bluetooth import Bluetooth
from cubeconnect.connection import Connection

logger = logging.getLogger(__name__)

ALLOWED_HOSTS = (
    "localhost",
    "127.0.0.1",
    "app.cubeast.com",
    "app.staging.cubeast.com",
)

DEFAULT_ADDRESS = "127.0.0.1:17430"

ALLOW_ANY_ORIGIN_VARIABLE = "ALLOW_ANY_ORIGIN"


def _origin_host(origin: str) -> str | None:
    if not origin or origin.startswith("/") or origin == "*":
        return None
    target = origin if "://" in origin else f"//{origin}"
    try:
        netloc = urlsplit(target).netloc
    except ValueError:
        return None
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else None
    host = host.partition(":")[0]
    return host or None


def origin_allowed(origin: str | None, allow_any: bool) -> bool:
    """Whether a client sending this Origin header may connect."""
    if allow_any:
        return True
    if origin is None:
        return False
    host = _origin_host(origin)
    return host is not None and host in ALLOWED_HOSTS


def listen_address(argv: Sequence[str] | None) -> str:
    """The address to listen on: the first argument, or the default."""
    if argv:
        return argv[0]
    return DEFAULT_ADDRESS


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port_text = address.rpartition(":")
    if not sep or not host or not port_text.isdigit():
        raise ValueError(f"invalid listen address: {address!r}")
    port = int(port_text)
    if port > 0xFFFF:
        raise ValueError(f"invalid port in listen address: {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


class Server:
    """Accepts websocket clients and serves each with its own connection."""

    def __init__(self, bluetooth: Bluetooth, address: str = DEFAULT_ADDRESS) -> None:
        self._bluetooth = bluetooth
        self._host, self._port = _split_address(address)
        self._bound: tuple[str, int] | None = None
        self.started = asyncio.Event()

    @property
    def bound_address(self) -> tuple[str, int] | None:
        """Host and port actually listened on, once the server has started."""
        return self._bound

    def _check_origin(
        self, connection: ServerConnection, request: Request
    ) -> Response | None:
        origin = request.headers.get("Origin")
        if ALLOW_ANY_ORIGIN_VARIABLE in os.environ:
            logger.debug("%s is set, allowing any origin", ALLOW_ANY_ORIGIN_VARIABLE)
            return None
        if origin_allowed(origin, False):
            logger.debug("Received connection from origin: %s", origin)
            return None
        logger.info("Rejected connection from %r", origin)
        return connection.respond(HTTPStatus.FORBIDDEN, "")

    async def _handle(self, websocket: ServerConnection) -> None:
        connection = Connection(self._bluetooth, websocket.send)
        try:
            await connection.run(websocket)
        except ConnectionClosed as err:
            logger.info("Websocket closed: %r", err)

    async def run(self) -> None:
        """Listen for clients until cancelled."""
        async with serve(
            self._handle,
            self._host,
            self._port,
            process_request=self._check_origin,
        ) as server:
            name = next(iter(server.sockets)).getsockname()
            self._bound = (name[0], name[1])
            logger.info("Listening on: %s:%d", *self._bound)
            self.started.set()
            await server.serve_forever()

    def start(self) -> asyncio.Task[None]:
        """Run the server in the background on the running event loop."""
        return asyncio.get_running_loop().create_task(self.run())