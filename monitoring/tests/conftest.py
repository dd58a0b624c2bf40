"""Pytest fixtures for monitoring tests."""

from datetime import datetime

import pytest
from prometheus_client import CollectorRegistry

from stream_source.base import RoomInfo, StreamSource


class ScriptedSource(StreamSource):
    """Source whose live status follows a script, repeating the last value."""

    platform = "bilibili"

    def __init__(self, room_id: str, statuses=(False,)):
        self.room_id = room_id
        self.statuses = list(statuses)
        self.checks = 0
        self.listening = False
        self.closed = False

    async def is_live(self) -> bool:
        index = min(self.checks, len(self.statuses) - 1)
        self.checks += 1
        return self.statuses[index]

    async def playable_url(self) -> str:
        return "http://origin/live.m3u8"

    async def get_room_info(self) -> RoomInfo:
        return RoomInfo(
            platform=self.platform,
            room_id=self.room_id,
            uname="Alice",
            title="Test stream",
            start_time=datetime(2024, 5, 1, 20, 0, 0),
        )

    def start_listener(self) -> None:
        self.listening = True

    def stop_listener(self) -> None:
        self.listening = False

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def scripted_source_class():
    return ScriptedSource


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated Prometheus registry."""
    return CollectorRegistry()
