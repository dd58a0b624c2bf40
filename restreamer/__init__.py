"""
Restreamer service entry point.

Runs the live room monitor and the relay manager under one controller.
"""

from restreamer.controller import NothingToRun, ServiceController, ServiceInfo, ServiceStatus, SystemInfo

__version__ = "1.0.0"
__all__ = ["NothingToRun", "ServiceController", "ServiceInfo", "ServiceStatus", "SystemInfo"]
