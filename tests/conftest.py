"""Общие фикстуры: настройки, реестр и тестовый сборщик событий."""
import asyncio
import os
import sys
import time

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from tma_bot.config import Settings  # noqa: E402
from tma_bot.users import UserRegistry  # noqa: E402


@pytest.fixture
def make_settings():
    def factory(**overrides):
        return Settings(**overrides)
    return factory


@pytest.fixture
def registry(tmp_path):
    return UserRegistry(str(tmp_path / "user_ids.txt"))


class Collector:
    """aiohttp-сервер, отвечающий статусами из списка (последний повторяется)."""

    def __init__(self, statuses, hang_seconds: float = 0.0):
        self.statuses = list(statuses)
        self.hang_seconds = hang_seconds
        self.calls = []
        self.server = None

    async def _handle(self, request: web.Request) -> web.Response:
        self.calls.append({
            "at": time.monotonic(),
            "path": request.path,
            "headers": dict(request.headers),
            "json": await request.json(),
        })
        if self.hang_seconds:
            await asyncio.sleep(self.hang_seconds)
        status = self.statuses[min(len(self.calls), len(self.statuses)) - 1]
        return web.Response(status=status)

    async def start(self):
        app = web.Application()
        app.router.add_post("/{tail:.*}", self._handle)
        self.server = TestServer(app)
        await self.server.start_server()
        return self

    @property
    def base_url(self) -> str:
        return f"http://{self.server.host}:{self.server.port}"

    def url(self, path: str = "/collect") -> str:
        return self.base_url + path


@pytest.fixture
async def collector():
    started = []

    async def factory(*statuses, hang_seconds: float = 0.0):
        c = await Collector(statuses or (200,), hang_seconds=hang_seconds).start()
        started.append(c)
        return c

    yield factory
    for c in started:
        await c.server.close()
