"""
Pytest configuration and fixtures for relay manager tests.

Relays are exercised with fake sources and fake destination processes,
so no FFmpeg binary or network access is needed.
"""

import asyncio
import itertools
from datetime import datetime
from typing import Callable, List, Optional

import pytest

from relay_manager.config import RelaySettings
from relay_manager.process import DestinationProcessError
from shared.config import DestinationDefinition, RelayDefinition, SourceDefinition
from stream_source.base import RoomInfo, StreamSource

_pids = itertools.count(1000)


class FakeSource(StreamSource):
    """Stream source with scripted liveness and URL."""

    platform = "fake"

    def __init__(self, live: bool = True, url: str = "http://origin/live.flv"):
        self.live = live
        self.url = url
        self.live_checks = 0
        self.url_requests = 0
        self.listening = False
        self.closed = False

    async def is_live(self) -> bool:
        self.live_checks += 1
        return self.live

    async def playable_url(self) -> str:
        self.url_requests += 1
        return self.url

    async def get_room_info(self) -> RoomInfo:
        return RoomInfo(platform=self.platform, room_id="1", is_live=self.live)

    def start_listener(self) -> None:
        self.listening = True

    def stop_listener(self) -> None:
        self.listening = False

    async def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Destination process whose exit is driven by the test."""

    def __init__(self, destination: DestinationDefinition, command: List[str]):
        self.destination = destination
        self.command = command
        self.pid = next(_pids)
        self.started_at: Optional[datetime] = None
        self.killed = False
        self.kill_count = 0
        self.started = asyncio.Event()
        self._exit: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def name(self) -> str:
        return self.destination.name

    async def run(self) -> None:
        self.started_at = datetime.now()
        self.started.set()
        code = await self._exit
        if self.killed:
            return
        if code != 0:
            raise DestinationProcessError(self.name, f"ffmpeg exited with code {code}", returncode=code)

    def exit(self, code: int) -> None:
        if not self._exit.done():
            self._exit.set_result(code)

    def kill(self) -> None:
        self.kill_count += 1
        self.killed = True
        self.exit(-9)

    def resource_usage(self):
        return None


class FakeProcessFactory:
    """Records every process a relay launches."""

    def __init__(self):
        self.processes: List[FakeProcess] = []

    def __call__(self, destination: DestinationDefinition, command: List[str]) -> FakeProcess:
        process = FakeProcess(destination, command)
        self.processes.append(process)
        return process

    async def wait_for(self, count: int, timeout: float = 2.0) -> List[FakeProcess]:
        """Wait until at least ``count`` processes were launched and started."""

        async def _wait():
            while len(self.processes) < count:
                await asyncio.sleep(0.001)
            for process in self.processes[:count]:
                await process.started.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)
        return self.processes[:count]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _wait():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_wait(), timeout=timeout)


@pytest.fixture
def relay_settings() -> RelaySettings:
    """Settings with short delays for fast tests."""
    return RelaySettings(
        ffmpeg_binary="ffmpeg",
        poll_interval=0.01,
        backoff_delay=0.01,
        kill_timeout=0.5,
        log_output=False,
    )


@pytest.fixture
def destinations() -> List[DestinationDefinition]:
    return [
        DestinationDefinition(name="youtube", url="rtmp://a.example/live/key1"),
        DestinationDefinition(name="twitch", url="rtmp://b.example/app/key2"),
    ]


@pytest.fixture
def relay_definition(destinations) -> RelayDefinition:
    return RelayDefinition(
        name="demo",
        source=SourceDefinition(platform="bilibili", room_id="123"),
        destinations=destinations,
    )


@pytest.fixture
def fake_source_class():
    return FakeSource


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def process_factory() -> FakeProcessFactory:
    return FakeProcessFactory()


@pytest.fixture
def wait_for():
    """Poll a predicate until true or fail with a timeout."""
    return wait_until
