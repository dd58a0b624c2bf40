"""Pytest fixtures for the service controller and CLI tests."""

import asyncio
from typing import Callable, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from monitoring.config import MonitoringConfig
from monitoring.metrics import RelayMetrics
from notifier.notifier import Notifier
from relay_manager.config import RelaySettings
from shared.config import AppConfig
from stream_source.base import RoomInfo, StreamSource

SAMPLE_CONFIG = {
    "rooms": [{"platform": "bilibili", "room_id": "76"}],
    "relays": [
        {
            "name": "demo",
            "source": {"platform": "bilibili", "room_id": "76"},
            "destinations": [{"name": "youtube", "url": "rtmp://a.example/live/key1"}],
        }
    ],
    "interval": "1m",
}


class LiveSource(StreamSource):
    """Source that is always live."""

    platform = "bilibili"

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.closed = False

    async def is_live(self) -> bool:
        return True

    async def playable_url(self) -> str:
        return "http://origin/live.m3u8"

    async def get_room_info(self) -> RoomInfo:
        return RoomInfo(platform=self.platform, room_id=self.room_id, uname="Alice", is_live=True)

    def start_listener(self) -> None:
        pass

    def stop_listener(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True


class BlockingProcess:
    """Destination process that streams until killed."""

    def __init__(self, destination, command: List[str]):
        self.destination = destination
        self.command = command
        self.pid = 4242
        self.started_at = None
        self.killed = False
        self._stop = asyncio.Event()

    @property
    def name(self) -> str:
        return self.destination.name

    async def run(self) -> None:
        await self._stop.wait()

    def kill(self) -> None:
        self.killed = True
        self._stop.set()

    def resource_usage(self):
        return None


class SourceRegistry:
    """Source factory remembering what it built."""

    def __init__(self):
        self.sources: Dict[str, LiveSource] = {}

    def __call__(self, platform: str, room_id: str) -> LiveSource:
        source = LiveSource(room_id)
        self.sources[f"{platform}:{room_id}:{len(self.sources)}"] = source
        return source


class ProcessRecorder:
    def __init__(self):
        self.processes: List[BlockingProcess] = []

    def __call__(self, destination, command) -> BlockingProcess:
        process = BlockingProcess(destination, command)
        self.processes.append(process)
        return process


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig.model_validate(SAMPLE_CONFIG)


@pytest.fixture
def notifier():
    """Notifier double recording every call."""
    notifier = MagicMock(spec=Notifier)
    notifier.send_system = AsyncMock(return_value=True)
    notifier.send_error = AsyncMock(return_value=True)
    notifier.send_live_status = AsyncMock(return_value=True)
    notifier.send_relay_event = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def metrics() -> RelayMetrics:
    return RelayMetrics(registry=CollectorRegistry())


@pytest.fixture
def monitoring_config() -> MonitoringConfig:
    return MonitoringConfig(check_interval=0.01)


@pytest.fixture
def relay_settings() -> RelaySettings:
    return RelaySettings(poll_interval=0.01, backoff_delay=0.01, kill_timeout=0.5, log_output=False)


@pytest.fixture
def source_factory() -> SourceRegistry:
    return SourceRegistry()


@pytest.fixture
def process_factory() -> ProcessRecorder:
    return ProcessRecorder()


@pytest.fixture
def wait_for() -> Callable:
    """Poll a predicate until true or fail with a timeout."""

    async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async def _poll():
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout=timeout)

    return _wait_for
