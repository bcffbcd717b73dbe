"""Minimal asynchronous Graylog client speaking GELF 1.1 over TCP, UDP or HTTP."""

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

GELF_VERSION = "1.1"
CHUNK_MAGIC = b"\x1e\x0f"
CHUNK_SIZE = 1420
MAX_CHUNKS = 128
TRANSPORTS = ("tcp", "udp", "http")


class GelfError(Exception):
    """Raised when a message cannot be delivered to the collector."""


@dataclass
class GelfMessage:
    host: str
    short_message: str
    full_message: str = ""
    timestamp: int = field(default_factory=lambda: int(time.time()))
    level: int = 1
    extra: dict[str, str] = field(default_factory=dict)
    version: str = GELF_VERSION

    def to_dict(self) -> dict:
        payload = {
            "version": self.version,
            "host": self.host,
            "short_message": self.short_message,
            "full_message": self.full_message,
            "timestamp": self.timestamp,
            "level": self.level,
        }
        # Additional fields must carry a leading underscore on the wire.
        for key, value in self.extra.items():
            payload[f"_{key}"] = value
        return payload

    def encode(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode()


def chunk_datagram(payload: bytes, chunk_size: int = CHUNK_SIZE, message_id: bytes | None = None) -> list[bytes]:
    """Split a UDP payload into GELF chunks. Small payloads are sent as-is."""
    if len(payload) <= chunk_size:
        return [payload]
    parts = [payload[i:i + chunk_size] for i in range(0, len(payload), chunk_size)]
    if len(parts) > MAX_CHUNKS:
        raise GelfError(f"Message too large for UDP: {len(payload)} bytes in {len(parts)} chunks")
    message_id = message_id or os.urandom(8)
    count = len(parts)
    return [
        CHUNK_MAGIC + message_id + bytes([seq, count]) + part
        for seq, part in enumerate(parts)
    ]


class TcpTransport:
    """One persistent connection; messages are NUL-terminated JSON documents."""

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._writer: asyncio.StreamWriter | None = None

    async def connect(self) -> None:
        try:
            _, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.timeout
            )
        except (OSError, TimeoutError) as e:
            raise GelfError(f"Cannot connect to {self.host}:{self.port}: {e!r}") from e

    async def send(self, payload: bytes) -> None:
        if self._writer is None:
            await self.connect()
        try:
            self._writer.write(payload + b"\0")
            await asyncio.wait_for(self._writer.drain(), self.timeout)
        except (OSError, TimeoutError) as e:
            # Drop the broken connection; the next message reconnects.
            await self.close()
            raise GelfError(f"TCP send to {self.host}:{self.port} failed: {e!r}") from e

    async def close(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug("Error while closing GELF connection: %s", e)


class UdpTransport:
    def __init__(self, host: str, port: int, timeout: float, chunk_size: int = CHUNK_SIZE) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._transport: asyncio.DatagramTransport | None = None

    async def connect(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await asyncio.wait_for(
                loop.create_datagram_endpoint(
                    asyncio.DatagramProtocol, remote_addr=(self.host, self.port)
                ),
                self.timeout,
            )
        except (OSError, TimeoutError) as e:
            raise GelfError(f"Cannot open UDP socket to {self.host}:{self.port}: {e!r}") from e

    async def send(self, payload: bytes) -> None:
        if self._transport is None:
            await self.connect()
        try:
            for datagram in chunk_datagram(payload, self.chunk_size):
                self._transport.sendto(datagram)
        except OSError as e:
            raise GelfError(f"UDP send to {self.host}:{self.port} failed: {e!r}") from e

    async def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None


class HttpTransport:
    def __init__(self, host: str, port: int, timeout: float, http: httpx.AsyncClient | None = None) -> None:
        self.url = f"http://{host}:{port}/gelf"
        self.timeout = timeout
        self._http = http

    async def connect(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)

    async def send(self, payload: bytes) -> None:
        if self._http is None:
            await self.connect()
        try:
            resp = await self._http.post(
                self.url, content=payload, headers={"Content-Type": "application/json"}
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GelfError(f"HTTP send to {self.url} failed: {e!r}") from e

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class GelfClient:
    def __init__(
        self,
        transport: str = "tcp",
        host: str = "localhost",
        port: int = 12201,
        timeout: float = 5.0,
        *,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        if transport == "tcp":
            self._transport = TcpTransport(host, port, timeout)
        elif transport == "udp":
            self._transport = UdpTransport(host, port, timeout)
        elif transport == "http":
            self._transport = HttpTransport(host, port, timeout, http=http)
        else:
            raise ValueError(f"Unsupported GELF transport {transport!r}, expected one of {TRANSPORTS}")
        self.transport = transport
        self.host = host
        self.port = port

    def __repr__(self) -> str:
        return f"GelfClient({self.transport}://{self.host}:{self.port})"

    async def connect(self) -> None:
        await self._transport.connect()

    async def send(self, message: GelfMessage) -> None:
        await self._transport.send(message.encode())

    async def close(self) -> None:
        await self._transport.close()
