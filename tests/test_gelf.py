"""Tests for the GELF message model and the TCP/UDP/HTTP transports."""

import asyncio
import json

import httpx
import pytest

from bookshelf.services.gelf import (
    CHUNK_MAGIC,
    MAX_CHUNKS,
    GelfClient,
    GelfError,
    GelfMessage,
    UdpTransport,
    chunk_datagram,
)


def make_message(**kwargs):
    defaults = dict(
        host="localhost",
        short_message="Endpoint accessed",
        full_message="ID: 1 | Endpoint: /books\n",
        timestamp=1700000000,
        level=1,
        extra={"Endpoint": "/books", "Method": "GET", "IP": "localhost"},
    )
    defaults.update(kwargs)
    return GelfMessage(**defaults)


def test_message_to_dict_prefixes_extra_fields():
    assert make_message().to_dict() == {
        "version": "1.1",
        "host": "localhost",
        "short_message": "Endpoint accessed",
        "full_message": "ID: 1 | Endpoint: /books\n",
        "timestamp": 1700000000,
        "level": 1,
        "_Endpoint": "/books",
        "_Method": "GET",
        "_IP": "localhost",
    }


def test_message_encode_is_compact_json():
    payload = make_message(extra={}).encode()
    assert b"\", \"" not in payload
    assert b"\": " not in payload
    assert json.loads(payload)["short_message"] == "Endpoint accessed"


def test_message_default_timestamp_is_now():
    message = GelfMessage(host="h", short_message="s")
    assert isinstance(message.timestamp, int)
    assert message.timestamp > 1_600_000_000


def test_chunk_small_payload_untouched():
    assert chunk_datagram(b"abc", chunk_size=10) == [b"abc"]


def test_chunk_large_payload():
    payload = bytes(range(256)) * 2
    chunks = chunk_datagram(payload, chunk_size=100, message_id=b"12345678")
    assert len(chunks) == 6
    for seq, chunk in enumerate(chunks):
        assert chunk[:2] == CHUNK_MAGIC
        assert chunk[2:10] == b"12345678"
        assert chunk[10] == seq
        assert chunk[11] == 6
    assert b"".join(c[12:] for c in chunks) == payload


def test_chunk_too_many_chunks():
    with pytest.raises(GelfError):
        chunk_datagram(b"x" * (MAX_CHUNKS + 1), chunk_size=1)


def test_unknown_transport():
    with pytest.raises(ValueError):
        GelfClient("carrier-pigeon", "localhost", 12201)


@pytest.mark.asyncio
async def test_tcp_sends_nul_terminated_json():
    received = asyncio.Queue()

    async def handle(reader, writer):
        while True:
            try:
                received.put_nowait(await reader.readuntil(b"\0"))
            except asyncio.IncompleteReadError:
                break
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = GelfClient("tcp", "127.0.0.1", port, timeout=2.0)
    try:
        await client.connect()
        await client.send(make_message())
        await client.send(make_message(short_message="second"))
        first = await asyncio.wait_for(received.get(), 2.0)
        second = await asyncio.wait_for(received.get(), 2.0)
    finally:
        await client.close()
        server.close()
        await server.wait_closed()

    assert first.endswith(b"\0")
    assert json.loads(first[:-1]) == make_message().to_dict()
    assert json.loads(second[:-1])["short_message"] == "second"


@pytest.mark.asyncio
async def test_tcp_connects_lazily_on_first_send():
    received = asyncio.Queue()

    async def handle(reader, writer):
        received.put_nowait(await reader.readuntil(b"\0"))
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = GelfClient("tcp", "127.0.0.1", port, timeout=2.0)
    try:
        await client.send(make_message())
        data = await asyncio.wait_for(received.get(), 2.0)
    finally:
        await client.close()
        server.close()
        await server.wait_closed()
    assert json.loads(data[:-1])["host"] == "localhost"


@pytest.mark.asyncio
async def test_tcp_connect_refused():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    client = GelfClient("tcp", "127.0.0.1", port, timeout=2.0)
    with pytest.raises(GelfError):
        await client.connect()


class _Collector(asyncio.DatagramProtocol):
    def __init__(self):
        self.datagrams = asyncio.Queue()

    def datagram_received(self, data, addr):
        self.datagrams.put_nowait(data)


async def _udp_collector():
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(_Collector, local_addr=("127.0.0.1", 0))
    return transport, protocol, transport.get_extra_info("sockname")[1]


@pytest.mark.asyncio
async def test_udp_sends_single_datagram():
    server, collector, port = await _udp_collector()
    client = GelfClient("udp", "127.0.0.1", port, timeout=2.0)
    try:
        await client.connect()
        await client.send(make_message())
        data = await asyncio.wait_for(collector.datagrams.get(), 2.0)
    finally:
        await client.close()
        server.close()
    assert json.loads(data) == make_message().to_dict()


@pytest.mark.asyncio
async def test_udp_chunks_large_messages():
    server, collector, port = await _udp_collector()
    transport = UdpTransport("127.0.0.1", port, timeout=2.0, chunk_size=64)
    message = make_message(full_message="x" * 500)
    try:
        await transport.send(message.encode())
        chunks = []
        while True:
            chunks.append(await asyncio.wait_for(collector.datagrams.get(), 2.0))
            if len(chunks) == chunks[0][11]:
                break
    finally:
        await transport.close()
        server.close()

    assert all(c[:2] == CHUNK_MAGIC for c in chunks)
    assert len({c[2:10] for c in chunks}) == 1
    chunks.sort(key=lambda c: c[10])
    assert json.loads(b"".join(c[12:] for c in chunks)) == message.to_dict()


@pytest.mark.asyncio
async def test_http_posts_to_gelf_endpoint():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = GelfClient("http", "graylog.internal", 12202, http=http)
    await client.send(make_message())
    await client.close()

    (request,) = requests
    assert request.method == "POST"
    assert str(request.url) == "http://graylog.internal:12202/gelf"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == make_message().to_dict()


@pytest.mark.asyncio
async def test_http_error_status_raises():
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    client = GelfClient("http", "graylog.internal", 12202, http=http)
    with pytest.raises(GelfError):
        await client.send(make_message())
    await client.close()


@pytest.mark.asyncio
async def test_http_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = GelfClient("http", "graylog.internal", 12202, http=http)
    with pytest.raises(GelfError):
        await client.send(make_message())
    await client.close()
