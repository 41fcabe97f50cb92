"""Scheduling wrappers around the self-adjustment engine."""

from .monitoring_loop import HourlyMonitoringLoop, MonitoringRunResult, MonitoringScheduler

__all__ = ["HourlyMonitoringLoop", "MonitoringRunResult", "MonitoringScheduler"]
