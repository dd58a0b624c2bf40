"""
Pytest fixtures for stream source tests.

HTTP traffic goes through ``httpx.MockTransport`` with per-path responses.
"""

from typing import Callable, Dict, List, Union

import httpx
import pytest

from stream_source.bilibili import BASE_URL, BilibiliService

Responder = Union[dict, Callable[[httpx.Request], httpx.Response]]


class FakeBilibiliAPI:
    """Routes requests by path to canned JSON payloads."""

    def __init__(self):
        self.routes: Dict[str, Responder] = {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get(request.url.path)
        if responder is None:
            return httpx.Response(404, json={"code": -404, "msg": "not found"})
        if callable(responder):
            return responder(request)
        return httpx.Response(200, json=responder)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def api() -> FakeBilibiliAPI:
    return FakeBilibiliAPI()


@pytest.fixture
def make_service(api):
    """Build a BilibiliService wired to the fake API."""

    def _make(room_id: str = "123", **kwargs) -> BilibiliService:
        client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api))
        kwargs.setdefault("retry_wait", 0)
        return BilibiliService(room_id, client=client, **kwargs)

    return _make
