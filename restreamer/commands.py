"""
Bot commands backed by the service controller.

/status, /rooms and /relays report; /stop and /restart control the
monitor and the relay manager individually.
"""

from typing import TYPE_CHECKING, List

from notifier.bot import TelegramBot
from notifier.formatting import (
    SERVICE_LABELS,
    escape_markdown,
    format_relays,
    format_rooms,
    format_status_report,
)

if TYPE_CHECKING:
    from restreamer.controller import ServiceController

SERVICES = ("monitor", "relay")


def register_commands(bot: TelegramBot, controller: "ServiceController") -> None:
    """Register the controller commands on ``bot``."""

    async def status(args: List[str]) -> str:
        return format_status_report(controller.status().to_dict())

    async def rooms(args: List[str]) -> str:
        return format_rooms(controller.status().rooms)

    async def relays(args: List[str]) -> str:
        return format_relays(controller.status().relays)

    async def stop(args: List[str]) -> str:
        if not args:
            return escape_markdown("❌ 请指定要停止的服务: monitor 或 relay")
        name = args[0].lower()
        if name not in SERVICES:
            return escape_markdown("❌ 未知服务。可用服务: monitor, relay")

        label = SERVICE_LABELS[name]
        if not await controller.stop_service(name):
            return escape_markdown(f"ℹ️ {label}未在运行")
        return escape_markdown(f"🛑 {label}已停止")

    async def restart(args: List[str]) -> str:
        if not args:
            return escape_markdown("❌ 请指定要重启的服务: monitor, relay 或 system")
        name = args[0].lower()
        if name == "system":
            names = [service for service in SERVICES if service in controller.services]
            lines = ["🔄 系统重启中..."]
        elif name in SERVICES:
            names = [name]
            lines = []
        else:
            return escape_markdown("❌ 未知服务。可用服务: monitor, relay, system")

        for service in names:
            label = SERVICE_LABELS[service]
            if await controller.restart_service(service):
                lines.append(f"🟢 {label}已启动")
            else:
                lines.append(f"❌ {label}启动失败")
        return escape_markdown("\n".join(lines))

    bot.register("status", status, "查看系统状态")
    bot.register("rooms", rooms, "查看监控的直播间")
    bot.register("relays", relays, "查看转播状态")
    bot.register("stop", stop, "停止服务 (monitor/relay)")
    bot.register("restart", restart, "重启服务 (monitor/relay/system)")
