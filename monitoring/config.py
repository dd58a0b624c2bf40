"""Configuration for monitoring module."""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class MonitoringConfig:
    """Configuration for room monitoring and metrics."""

    # Room monitor
    check_interval: float = 30.0  # seconds between live status checks
    verbose: bool = False

    # Metrics
    metrics_enabled: bool = False
    metrics_port: int = 9090
    metrics_addr: str = "0.0.0.0"

    @classmethod
    def from_env(cls, check_interval: Optional[float] = None) -> "MonitoringConfig":
        """Create configuration from environment variables.

        Args:
            check_interval: Interval from the application config, used unless
                MONITOR_INTERVAL is set

        Returns:
            MonitoringConfig instance
        """
        default_interval = check_interval if check_interval is not None else cls.check_interval
        return cls(
            check_interval=float(os.getenv("MONITOR_INTERVAL", str(default_interval))),
            verbose=os.getenv("MONITOR_VERBOSE", "false").lower() == "true",
            metrics_enabled=os.getenv("METRICS_ENABLED", "false").lower() == "true",
            metrics_port=int(os.getenv("METRICS_PORT", "9090")),
            metrics_addr=os.getenv("METRICS_ADDR", "0.0.0.0"),
        )

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.check_interval <= 0:
            raise ValueError(f"Invalid check_interval: {self.check_interval}")

        if self.metrics_port < 1 or self.metrics_port > 65535:
            raise ValueError(f"Invalid metrics_port: {self.metrics_port}")


def get_config(check_interval: Optional[float] = None) -> MonitoringConfig:
    """Get monitoring configuration from environment.

    Returns:
        MonitoringConfig instance
    """
    config = MonitoringConfig.from_env(check_interval)
    config.validate()
    return config
