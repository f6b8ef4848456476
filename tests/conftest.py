import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from cosmos_exporter.client import NodeApiClient

LATEST_BLOCK = {'block': {'header': {'height': '12345', 'time': '2024-01-01T00:00:00.000000000Z'}}}
VALIDATOR_SET = {'result': {'validators': [{'address': 'cosmosvalcons1a'}, {'address': 'cosmosvalcons1b'}]}}

# 2024-01-01T00:00:05Z
NOW_NS = 1704067205 * 10 ** 9


class FakeNode:
    """In-process stand-in for the node REST API."""

    def __init__(self):
        self.url = ''
        self.requests = []
        self.delay = 0
        self.responses = {
            '/blocks/latest': json.dumps(LATEST_BLOCK),
            '/validatorsets/latest': json.dumps(VALIDATOR_SET),
        }

    def set_block(self, height, time='2024-01-01T00:00:00.000000000Z'):
        self.responses['/blocks/latest'] = json.dumps({'block': {'header': {'height': height, 'time': time}}})

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append(request.path)
        if self.delay:
            await asyncio.sleep(self.delay)
        body = self.responses.get(request.path)
        if body is None:
            return web.Response(status=404, text='not found')
        return web.Response(text=body, content_type='application/json')


@pytest.fixture
async def fake_node():
    node = FakeNode()
    app = web.Application()
    app.router.add_get('/{tail:.*}', node.handle)
    server = TestServer(app)
    await server.start_server()
    node.url = f'http://{server.host}:{server.port}'
    yield node
    await server.close()


@pytest.fixture
async def client(fake_node):
    async with NodeApiClient(fake_node.url, timeout=2) as client:
        yield client


@pytest.fixture
def write_addrbook(tmp_path):
    def write(ips=None, raw=None):
        path = tmp_path / 'addrbook.json'
        if raw is None:
            raw = json.dumps({'key': 'abc', 'addrs': [{'addr': {'ip': ip, 'port': 26656}} for ip in ips or []]})
        path.write_text(raw)
        return str(path)

    return write
