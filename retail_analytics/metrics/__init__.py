"""
Metrics Module
"""
from .attach_rate import AttachRateRecord, AttachRateReport, AttachRateService, calculate_from_line_items
from .engine import GroupedRow, MetricEngine, MetricOutcome
from .kpis import GroupBy, KpiResult, resolve_kpi_name

__all__ = [
    "AttachRateRecord",
    "AttachRateReport",
    "AttachRateService",
    "calculate_from_line_items",
    "GroupedRow",
    "MetricEngine",
    "MetricOutcome",
    "GroupBy",
    "KpiResult",
    "resolve_kpi_name",
]
