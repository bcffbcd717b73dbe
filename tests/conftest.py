from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from bookshelf.app import create_app
from bookshelf.services.access_log import AccessLogShipper
from bookshelf.services.gelf import GelfClient
from bookshelf.store import BookStore


@pytest.fixture
def store():
    return BookStore()


@pytest.fixture
def gelf():
    return AsyncMock(spec=GelfClient)


@pytest.fixture
async def shipper(gelf):
    s = AccessLogShipper(gelf, queue_size=100)
    await s.start()
    yield s
    await s.stop(timeout=1.0)


@pytest.fixture
async def client(store, shipper):
    app = create_app(store=store, shipper=shipper)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
