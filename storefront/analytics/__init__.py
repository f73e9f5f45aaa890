"""
Analytics Module

Visitor activity log, recording, aggregation and the sales dashboard.
"""
from .repository import ActivityRecord, ActivityRepository
from .aggregator import ActivityAggregator, ActivityPage, aggregate_activities
from .session import SessionIdentityProvider, client_fingerprint
from .recorder import ActivityRecorder
from .conversions import ConversionSink, HttpConversionSink, NullConversionSink, create_conversion_sink
from .dashboard import DashboardStats, SalesDashboard, compute_sales_stats

__all__ = [
    "ActivityRecord",
    "ActivityRepository",
    "ActivityAggregator",
    "ActivityPage",
    "aggregate_activities",
    "SessionIdentityProvider",
    "client_fingerprint",
    "ActivityRecorder",
    "ConversionSink",
    "HttpConversionSink",
    "NullConversionSink",
    "create_conversion_sink",
    "DashboardStats",
    "SalesDashboard",
    "compute_sales_stats",
]
