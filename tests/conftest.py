"""
Shared fixtures: a local fake Tezos node served by aiohttp.
"""

from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from ionic_tezos_client.data_source.rpc.client import RPCClient
from ionic_tezos_client.data_source.rpc.rpc_data_source import TezosRPCDataSource

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> bytes:
    return (FIXTURES / name).read_bytes()


class FakeNode:
    """Serves canned responses by path (query included) and records requests."""

    def __init__(self):
        self.url = ""
        self.requests: list[web.Request] = []
        self._routes = {}

    def respond(
            self,
            path: str,
            body: bytes = b"",
            status: int = 200,
            content_type: Optional[str] = "application/json",
    ) -> None:
        async def handler(request: web.Request) -> web.StreamResponse:
            response = web.Response(status=status, body=body)
            if content_type:
                response.content_type = content_type
            return response

        self._routes[path] = handler

    def respond_fixture(self, path: str, fixture: str, **kwargs) -> None:
        self.respond(path, load_fixture(fixture), **kwargs)

    def stream(self, path: str, chunks: list[bytes]) -> None:
        """Sends `chunks` one by one over a chunked response, then closes it."""
        async def handler(request: web.Request) -> web.StreamResponse:
            response = web.StreamResponse(status=200)
            response.content_type = "application/json"
            await response.prepare(request)
            for chunk in chunks:
                await response.write(chunk)
            await response.write_eof()
            return response

        self._routes[path] = handler

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(request)
        handler = self._routes.get(request.path_qs) or self._routes.get(request.path)
        if handler is None:
            return web.Response(status=404, text="Not found")
        return await handler(request)

    @property
    def last_request(self) -> web.Request:
        return self.requests[-1]


@pytest_asyncio.fixture
async def node():
    fake = FakeNode()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)

    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("/"))
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def client(node):
    async with RPCClient(node.url, timeout=5) as rpc_client:
        yield rpc_client


@pytest_asyncio.fixture
async def data_source(node):
    source = TezosRPCDataSource(node.url, config={"timeout": 5})
    await source.connect()
    yield source
    await source.disconnect()


@pytest.fixture
def fixture_bytes():
    return load_fixture
