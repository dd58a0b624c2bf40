"""Monitoring module.

Provides the live room monitor and Prometheus metrics.
"""

from .config import MonitoringConfig, get_config
from .metrics import RelayMetrics
from .room_monitor import LiveStatusChange, NoSourcesConfigured, RoomMonitor

__all__ = [
    "MonitoringConfig",
    "get_config",
    "RelayMetrics",
    "LiveStatusChange",
    "NoSourcesConfigured",
    "RoomMonitor",
]

__version__ = "1.0.0"
