"""Bilibili live platform client and stream source.

Talks to the public ``api.live.bilibili.com`` endpoints to resolve the
real room id, the live status, playable stream URLs and room metadata.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from logging_module import get_logger
from stream_source.base import InvalidRoomIDError, RoomInfo, StreamSource

logger = logging.getLogger(__name__)

BASE_URL = "https://api.live.bilibili.com"
USER_AGENT = (
    "Mozilla/5.0 (iPod; CPU iPhone OS 14_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) CriOS/87.0.4280.163 Mobile/15E148 Safari/604.1"
)

ROOM_INIT_PATH = "/room/v1/Room/room_init"
ROOM_INFO_PATH = "/room/v1/Room/get_info"
ANCHOR_INFO_PATH = "/live_user/v1/UserInfo/get_anchor_in_room"
PLAY_URL_PATH = "/room/v1/Room/playUrl"
ROOM_PLAY_INFO_PATH = "/xlive/web-room/v2/index/getRoomPlayInfo"

MAX_RETRY_COUNT = 3
RETRY_WAIT_SECONDS = 5.0
REQUEST_TIMEOUT_SECONDS = 30.0
MAX_ROOM_ID_LENGTH = 20

ROOM_NOT_FOUND_MSG = "直播间不存在"

_ROOM_ID_PATTERN = re.compile(r"^\d+$")


class BilibiliAPIError(Exception):
    """The API answered with a non-zero code or an unusable payload."""


def validate_room_id(room_id: str) -> None:
    """Validate a Bilibili room id.

    Raises:
        InvalidRoomIDError: If the id is empty, not numeric or too long
    """
    if not room_id:
        raise InvalidRoomIDError("room ID cannot be empty")
    if not _ROOM_ID_PATTERN.match(room_id):
        raise InvalidRoomIDError(f"room ID must contain only digits: {room_id!r}")
    if len(room_id) > MAX_ROOM_ID_LENGTH:
        raise InvalidRoomIDError(f"room ID is too long: {room_id!r}")


def flv_to_m3u8(url: str) -> str:
    """Rewrite ``.../name.flv?query`` into ``.../name/index.m3u8``.

    URLs that do not point at an ``.flv`` file are returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        logger.warning(f"Failed to parse URL {url}")
        return url

    head, _, filename = parts.path.rpartition("/")
    if not filename.endswith(".flv"):
        return url

    path = f"{head}/{filename[:-len('.flv')]}/index.m3u8"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def _data(payload: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Walk nested objects by key; missing or null levels read as empty.

    Raises:
        BilibiliAPIError: If a level is present but is not an object
    """
    current: Any = payload
    for key in keys or ("data",):
        current = current.get(key) if current else None
        if current is None:
            return {}
        if not isinstance(current, dict):
            raise BilibiliAPIError(f"unexpected {key!r} in response: {current!r:.100}")
    return current


def _stream_urls(durl: Any) -> List[str]:
    """URLs of the ``durl`` entries that carry one."""
    if not isinstance(durl, list):
        return []
    return [item["url"] for item in durl if isinstance(item, dict) and item.get("url")]


class BilibiliService:
    """Async client for the Bilibili live API."""

    def __init__(
        self,
        room_id: str,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = MAX_RETRY_COUNT,
        retry_wait: float = RETRY_WAIT_SECONDS,
    ):
        """Initialize the service.

        Args:
            room_id: Room id as shown in the room URL (may be a short id)
            client: Optional preconfigured HTTP client (used by tests)
            max_retries: Attempts per request on transport errors
            retry_wait: Seconds between attempts

        Raises:
            InvalidRoomIDError: If ``room_id`` is malformed
        """
        validate_room_id(room_id)
        self.room_id = room_id
        self.max_retries = max(1, max_retries)
        self.retry_wait = retry_wait
        self._client = client or httpx.AsyncClient(
            base_url=BASE_URL,
            headers={"User-Agent": USER_AGENT},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        """GET a JSON endpoint, retrying transport errors."""
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.get(path, params=params)
                payload = response.json()
            except httpx.RequestError as e:
                last_error = e
                logger.debug(
                    f"Request to {path} failed (attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_wait)
                continue
            except ValueError as e:
                raise BilibiliAPIError(f"failed to parse response from {path}: {e}") from e

            if not isinstance(payload, dict):
                raise BilibiliAPIError(f"unexpected response from {path}: {payload!r:.100}")
            return payload

        raise BilibiliAPIError(f"request to {path} failed: {last_error}") from last_error

    async def _room_init(self) -> Dict[str, Any]:
        payload = await self._get(ROOM_INIT_PATH, {"id": self.room_id})

        if payload.get("code") != 0:
            message = payload.get("msg") or payload.get("message") or ""
            if message == ROOM_NOT_FOUND_MSG:
                raise BilibiliAPIError(f"room {self.room_id} does not exist")
            raise BilibiliAPIError(f"API error (code {payload.get('code')}): {message}")

        return _data(payload)

    async def get_real_room_id(self) -> str:
        """Resolve a short room id to the real (long) room id."""
        data = await self._room_init()
        return str(data.get("room_id", ""))

    async def get_live_status(self) -> bool:
        """Whether the room is broadcasting (``live_status == 1``)."""
        data = await self._room_init()
        is_live = data.get("live_status") == 1
        logger.debug(f"Room {self.room_id} status: {'live' if is_live else 'offline'}")
        return is_live

    async def get_live_urls(self, real_room_id: str) -> List[str]:
        """Fetch playable stream URLs for a room.

        The ``playUrl`` endpoint is tried first and yields the first URL in
        HLS form followed by the original FLV URL; ``getRoomPlayInfo`` is the
        fallback.

        Raises:
            InvalidRoomIDError: If ``real_room_id`` is malformed
            BilibiliAPIError: If no URL can be obtained
        """
        validate_room_id(real_room_id)

        play = await self._get(
            PLAY_URL_PATH,
            {"cid": real_room_id, "qn": "10000", "platform": "web"},
        )
        if play.get("code") != 0:
            logger.warning(
                f"Play URL API returned error (code {play.get('code')}): {play.get('msg')}"
            )
        else:
            urls = _stream_urls(_data(play).get("durl"))
            if urls:
                return [flv_to_m3u8(urls[0]), urls[0]]

        info = await self._get(
            ROOM_PLAY_INFO_PATH,
            {
                "room_id": real_room_id,
                "no_playurl": "0",
                "mask": "0",
                "qn": "10000",
                "platform": "web",
                "protocol": "0,1",
                "format": "0,1,2",
                "codec": "0,1",
            },
        )
        if info.get("code") != 0:
            raise BilibiliAPIError(
                f"room play info API error (code {info.get('code')}): {info.get('msg')}"
            )

        playurl = _data(_data(info), "playurl_info", "playurl")
        urls = [flv_to_m3u8(url) for url in _stream_urls(playurl.get("durl"))]
        if not urls:
            raise BilibiliAPIError(f"no live stream URLs found for room {real_room_id}")

        return urls

    async def get_room_info(self) -> Dict[str, Any]:
        """Title, cover, keyframe and live start time of the room."""
        payload = await self._get(ROOM_INFO_PATH, {"room_id": self.room_id})
        if payload.get("code") != 0:
            raise BilibiliAPIError(
                f"room info API error (code {payload.get('code')}): {payload.get('msg')}"
            )
        return _data(payload)

    async def get_anchor_info(self) -> Dict[str, Any]:
        """Uid and name of the room's anchor."""
        payload = await self._get(ANCHOR_INFO_PATH, {"roomid": self.room_id})
        if payload.get("code") != 0:
            raise BilibiliAPIError(
                f"anchor info API error (code {payload.get('code')}): {payload.get('msg')}"
            )
        return _data(payload, "data", "info")


def _parse_live_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str) or value.startswith("0000"):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


class BilibiliStreamSource(StreamSource):
    """StreamSource backed by a Bilibili live room."""

    platform = "bilibili"

    def __init__(self, room_id: str, service: Optional[BilibiliService] = None):
        """
        Args:
            room_id: Room id from the configuration
            service: Optional API client (created from ``room_id`` if omitted)

        Raises:
            InvalidRoomIDError: If ``room_id`` is malformed
        """
        self.service = service or BilibiliService(room_id)
        self.room_info = RoomInfo(platform=self.platform, room_id=room_id)
        self._last_status = False
        self._log = get_logger(
            __name__, component="monitor", platform=self.platform, room_id=room_id
        )

    async def is_live(self) -> bool:
        try:
            status = await self.service.get_live_status()
        except (BilibiliAPIError, httpx.HTTPError) as e:
            self._log.error(f"Failed to get live status: {e}")
            return False

        if status != self._last_status:
            self.room_info.is_live = status
            if status:
                self.room_info.start_time = datetime.now()
                self.room_info.end_time = None
            else:
                self.room_info.end_time = datetime.now()
            self._last_status = status

        return status

    async def playable_url(self) -> str:
        real_room_id = self.room_info.real_room_id
        try:
            if not real_room_id:
                real_room_id = await self.service.get_real_room_id()
                self.room_info.real_room_id = real_room_id

            urls = await self.service.get_live_urls(real_room_id)
        except (BilibiliAPIError, InvalidRoomIDError, httpx.HTTPError) as e:
            self._log.error(f"Failed to get live URLs: {e}")
            return ""

        return urls[0] if urls else ""

    async def get_room_info(self) -> RoomInfo:
        info = self.room_info

        if not info.real_room_id:
            try:
                info.real_room_id = await self.service.get_real_room_id()
            except (BilibiliAPIError, httpx.HTTPError) as e:
                self._log.error(f"Failed to get real room ID: {e}")

        if not info.uid or not info.uname:
            try:
                anchor = await self.service.get_anchor_info()
                info.uid = str(anchor.get("uid", "") or "")
                info.uname = anchor.get("uname", "") or ""
            except (BilibiliAPIError, httpx.HTTPError) as e:
                self._log.error(f"Failed to get room base info: {e}")
            if not info.uname:
                info.uname = f"主播{info.room_id}"
                self._log.warning(f"Using default anchor name {info.uname}")

        if not info.title or not info.user_cover:
            try:
                data = await self.service.get_room_info()
                info.title = data.get("title", "") or ""
                info.user_cover = data.get("user_cover", "") or ""
                info.keyframe = data.get("keyframe", "") or ""
                if info.start_time is None:
                    info.start_time = _parse_live_time(data.get("live_time"))
            except (BilibiliAPIError, httpx.HTTPError) as e:
                self._log.error(f"Failed to get room info: {e}")

        return info

    def start_listener(self) -> None:
        # Live danmaku over websocket is not implemented
        self._log.info("Starting message listener")

    def stop_listener(self) -> None:
        self._log.info("Closing message listener")

    async def close(self) -> None:
        await self.service.close()
