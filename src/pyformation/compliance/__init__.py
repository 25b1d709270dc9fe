"""Compliance calendar generation, monitoring and automated preparation."""

from pyformation.compliance.automation import AutomationExecutor
from pyformation.compliance.calendar import CalendarGenerator, build_events, occurrences
from pyformation.compliance.monitor import ComplianceMonitor, classify, overall_status, rank_revenue
from pyformation.compliance.sweeper import ComplianceSweeper, SweeperHandle

__all__ = [
    "AutomationExecutor",
    "CalendarGenerator",
    "ComplianceMonitor",
    "ComplianceSweeper",
    "SweeperHandle",
    "build_events",
    "classify",
    "occurrences",
    "overall_status",
    "rank_revenue",
]
