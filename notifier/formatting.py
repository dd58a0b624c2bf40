"""
Message formatting for Telegram notifications (MarkdownV2).
"""

from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from stream_source.base import RoomInfo

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# https://core.telegram.org/bots/api#markdownv2-style
MARKDOWN_SPECIAL_CHARS = "\\_*[]()~`>#+-=|{}.!"

RELAY_STATUS_TEXT = {
    "started": ("🟢", "转播 {name} 已启动"),
    "streaming": ("📡", "转播 {name} 正在推流"),
    "stopped": ("🔴", "转播 {name} 已停止"),
    "error": ("❌", "转播 {name} 发生错误"),
    "restarted": ("🔄", "转播 {name} 已重启"),
}


def escape_markdown(text: str) -> str:
    """Escape MarkdownV2 special characters."""
    if not text:
        return ""
    return "".join(f"\\{char}" if char in MARKDOWN_SPECIAL_CHARS else char for char in text)


def _format_time(value: Optional[datetime]) -> str:
    return escape_markdown((value or datetime.now()).strftime(TIME_FORMAT))


def _room_id(room_info: RoomInfo) -> str:
    return room_info.real_room_id or room_info.room_id


def format_live_start(room_info: RoomInfo) -> Tuple[str, str]:
    """
    Format a live start notification.

    Returns:
        Tuple of (message text, photo URL). The photo is the room cover,
        falling back to the keyframe, or empty if neither is known.
    """
    live_url = f"https://live.bilibili.com/{_room_id(room_info)}"
    title = escape_markdown(room_info.title) if room_info.title else "未设置"

    message = f"🔴 *{escape_markdown(room_info.uname)} 开始直播啦！*\n\n"
    message += f"🎥 直播标题：{title}\n\n"
    message += f"⏰ 开播时间：_{_format_time(room_info.start_time)}_\n\n"
    message += f"[👉 进入直播间]({live_url})"

    photo_url = room_info.user_cover or room_info.keyframe
    return message, photo_url


def format_live_end(room_info: RoomInfo) -> str:
    """Format a live end notification."""
    message = f"💤 *{escape_markdown(room_info.uname)}* 已经下播了\n\n"
    message += f"⏰ 下播时间：_{_format_time(room_info.end_time)}_\n\n"

    if room_info.uid:
        message += f"[🏠 主播主页](https://space.bilibili.com/{room_info.uid})\n"
    message += f"[🎬 直播间回放](https://live.bilibili.com/{_room_id(room_info)})"

    return message


def format_relay_status(name: str, status: str, details: Optional[Mapping[str, Any]] = None) -> str:
    """Format a relay status change with optional details."""
    emoji, template = RELAY_STATUS_TEXT.get(status, ("ℹ️", "转播 {name} 状态更新: " + status))
    message = f"{emoji} *{escape_markdown(template.format(name=name))}*\n"

    if details:
        message += "\n*详细信息：*\n"
        for key, value in details.items():
            message += f"• *{escape_markdown(str(key))}*: `{_escape_code(value)}`\n"

    return message


def format_system(message: str) -> str:
    return f"ℹ️ *系统通知*\n\n{escape_markdown(message)}"


def format_error(message: str, error: Optional[Any] = None) -> str:
    """Format an error notification."""
    text = f"❌ *错误*\n\n{escape_markdown(message)}"
    if error:
        text += f"\n\n`{_escape_code(error)}`"
    return text


def _escape_code(value: Any) -> str:
    # Inside code spans only ` and \ need escaping
    return str(value).replace("\\", "\\\\").replace("`", "\\`")


SERVICE_LABELS = {
    "monitor": "监控服务",
    "relay": "转播服务",
    "bot": "机器人",
}


def format_duration(seconds: float) -> str:
    """Human readable duration: 秒, 分钟, 小时 and 天 granularity."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}秒"
    if seconds < 3600:
        return f"{seconds // 60}分钟"
    if seconds < 86400:
        return f"{seconds // 3600}小时{seconds % 3600 // 60}分钟"
    return f"{seconds // 86400}天{seconds % 86400 // 3600}小时"


def _format_service(name: str, info: Mapping[str, Any]) -> str:
    state = "🟢 运行中" if info.get("running") else "🔴 已停止"
    text = f"*{escape_markdown(SERVICE_LABELS.get(name, name))}*\n"
    text += f"• 状态: {state}\n"
    if info.get("running"):
        text += f"• 运行时间: {escape_markdown(format_duration(info.get('uptime_seconds', 0)))}\n"
    if info.get("error"):
        text += f"• 错误: `{_escape_code(info['error'])}`\n"
    return text


def format_status_report(status: Mapping[str, Any]) -> str:
    """Format the controller status (``ServiceStatus.to_dict()``) for a chat reply."""
    system = status.get("system") or {}
    uptime = format_duration(system.get("uptime_seconds", 0))
    cpu = "{:.1f}%".format(system.get("cpu_percent", 0.0))
    memory = "{:.1f} MB".format(system.get("process_memory_mb", 0.0))

    message = "📊 *系统状态报告*\n\n"
    message += "*系统信息*\n"
    message += f"• 运行时间: {escape_markdown(uptime)}\n"
    message += f"• CPU使用率: {escape_markdown(cpu)}\n"
    message += f"• 内存使用: {escape_markdown(memory)}\n"

    for name in ("monitor", "relay"):
        if name in status:
            message += "\n" + _format_service(name, status[name])

    return message


def format_rooms(rooms: Mapping[str, bool]) -> str:
    """Format the live status of every monitored room."""
    if not rooms:
        return "📭 *没有正在监控的直播间*"
    message = "📺 *直播间列表*\n\n"
    for key, is_live in sorted(rooms.items()):
        state = "🔴 直播中" if is_live else "⚪ 未开播"
        message += f"• `{_escape_code(key)}`: {state}\n"
    return message


def format_relays(relays: Mapping[str, Mapping[str, Any]]) -> str:
    """Format relay snapshots (``RelayStatus.to_dict()`` values)."""
    if not relays:
        return "📭 *没有正在运行的转播*"
    message = "📡 *转播列表*\n\n"
    for name, relay in sorted(relays.items()):
        state = escape_markdown(str(relay.get("state", "unknown")))
        message += f"*{escape_markdown(name)}*: {state}\n"
        message += f"• 推流进程: {relay.get('process_count', 0)}\n"
        message += f"• 重启次数: {relay.get('restart_count', 0)}\n"
        if relay.get("last_error"):
            message += f"• 错误: `{_escape_code(relay['last_error'])}`\n"
    return message
