"""Alert routing for rollout events and incidents."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
import json

from .contracts import AlertEvent, AlertSeverity


class AlertSink(ABC):
    """Abstract sink for alert events."""

    @abstractmethod
    def send(self, event: AlertEvent) -> None:
        """Deliver one alert event."""


class ConsoleAlertSink(AlertSink):
    def send(self, event: AlertEvent) -> None:
        payload = event.to_dict()
        print(
            f"[{payload['timestamp']}] [{payload['severity'].upper()}] "
            f"{payload['source']}: {payload['message']} details={payload['details']}"
        )


class FileAlertSink(AlertSink):
    """Append alerts as JSONL for audit and incident review."""

    def __init__(self, output_path: str | Path) -> None:
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def send(self, event: AlertEvent) -> None:
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event.to_dict(), default=str) + "\n")


class CollectingAlertSink(AlertSink):
    def __init__(self) -> None:
        self.events: list[AlertEvent] = []

    def send(self, event: AlertEvent) -> None:
        self.events.append(event)

    def messages(self, severity: AlertSeverity | None = None) -> list[str]:
        return [e.message for e in self.events if severity is None or e.severity == severity]


@dataclass(slots=True)
class AlertRouter:
    """
    Routes alert events by severity to configured sinks.

    default_sinks always receive events; severity_sinks are additive.
    """

    default_sinks: list[AlertSink] = field(default_factory=list)
    severity_sinks: dict[AlertSeverity, list[AlertSink]] = field(default_factory=dict)

    def route(self, event: AlertEvent) -> None:
        sinks: list[AlertSink] = list(self.default_sinks)
        sinks.extend(self.severity_sinks.get(event.severity, []))
        for sink in sinks:
            sink.send(event)

    def _emit(self, severity: AlertSeverity, source: str, message: str, details: dict | None) -> None:
        self.route(AlertEvent(severity=severity, source=source, message=message, details=details or {}))

    def info(self, source: str, message: str, details: dict | None = None) -> None:
        self._emit(AlertSeverity.INFO, source, message, details)

    def warning(self, source: str, message: str, details: dict | None = None) -> None:
        self._emit(AlertSeverity.WARNING, source, message, details)

    def critical(self, source: str, message: str, details: dict | None = None) -> None:
        self._emit(AlertSeverity.CRITICAL, source, message, details)

    @staticmethod
    def with_console_and_file(file_path: str | Path) -> "AlertRouter":
        return AlertRouter(default_sinks=[ConsoleAlertSink(), FileAlertSink(file_path)])
