"""Prometheus metrics exporter for relays and monitored rooms."""

import logging
from typing import Dict, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, generate_latest, start_http_server

from monitoring.room_monitor import LiveStatusChange
from relay_manager.stream_relay import RelayEvent, RelayEventKind, RelayStatus

logger = logging.getLogger(__name__)


class RelayMetrics:
    """Prometheus metrics for relay supervision.

    Fed from relay lifecycle events and room status changes, so it can be
    registered directly as a relay event callback and a monitor listener.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Prometheus metrics.

        Args:
            registry: Collector registry (defaults to the global registry)
        """
        self.registry = registry if registry is not None else REGISTRY

        # Counters
        self.relay_restarts_total = Counter(
            "restreamer_relay_restarts_total",
            "Total number of failed relay cycles",
            ["relay"],
            registry=self.registry,
        )

        self.relay_events_total = Counter(
            "restreamer_relay_events_total",
            "Total number of relay lifecycle events",
            ["relay", "kind"],
            registry=self.registry,
        )

        # Gauges
        self.relay_running = Gauge(
            "restreamer_relay_running",
            "Relay supervision status (1=running, 0=stopped)",
            ["relay"],
            registry=self.registry,
        )

        self.relay_processes = Gauge(
            "restreamer_relay_processes",
            "Number of FFmpeg processes of the relay",
            ["relay"],
            registry=self.registry,
        )

        self.room_live = Gauge(
            "restreamer_room_live",
            "Room live status (1=live, 0=offline)",
            ["room"],
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def record_relay_event(self, event: RelayEvent) -> None:
        """Update metrics from a relay lifecycle event."""
        relay = event.relay_name
        self.relay_events_total.labels(relay=relay, kind=event.kind.value).inc()

        if event.kind == RelayEventKind.STARTED:
            self.relay_running.labels(relay=relay).set(1)
        elif event.kind == RelayEventKind.STREAMING:
            self.relay_processes.labels(relay=relay).set(len(event.details.get("destinations", [])))
        elif event.kind == RelayEventKind.ERROR:
            self.relay_restarts_total.labels(relay=relay).inc()
            self.relay_processes.labels(relay=relay).set(0)
        elif event.kind == RelayEventKind.STOPPED:
            self.relay_running.labels(relay=relay).set(0)
            self.relay_processes.labels(relay=relay).set(0)

        logger.debug(f"Relay event recorded: {relay} {event.kind.value}")

    def record_live_status(self, change: LiveStatusChange) -> None:
        """Update the live gauge of a room."""
        self.room_live.labels(room=change.key).set(1 if change.is_live else 0)

    def update_from_relay_status(self, status: RelayStatus) -> None:
        """Update gauges from a relay status snapshot."""
        self.relay_running.labels(relay=status.name).set(1 if status.is_running else 0)
        self.relay_processes.labels(relay=status.name).set(status.process_count)

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose metrics over HTTP in a background thread."""
        start_http_server(port, addr=addr, registry=self.registry)
        logger.info(f"Metrics available on http://{addr}:{port}/metrics")

    def get_metrics(self) -> bytes:
        """Generate Prometheus metrics output.

        Returns:
            Prometheus metrics in text format
        """
        return generate_latest(self.registry)

    def get_metrics_summary(self) -> Dict:
        """Current metric values keyed by relay and room."""
        relays: Dict[str, Dict] = {}
        rooms: Dict[str, bool] = {}

        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name == "restreamer_relay_restarts_total":
                    relays.setdefault(sample.labels["relay"], {})["restarts"] = int(sample.value)
                elif sample.name == "restreamer_relay_running":
                    relays.setdefault(sample.labels["relay"], {})["running"] = bool(sample.value)
                elif sample.name == "restreamer_relay_processes":
                    relays.setdefault(sample.labels["relay"], {})["processes"] = int(sample.value)
                elif sample.name == "restreamer_room_live":
                    rooms[sample.labels["room"]] = bool(sample.value)

        return {"relays": relays, "rooms": rooms}
