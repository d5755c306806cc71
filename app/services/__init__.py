"""
app/services package marker.
"""

from app.services.metric_aggregator import MetricAggregator
from app.services.refresh_controller import RefreshController, RefreshFailedNoDataError

__all__ = [
    "MetricAggregator",
    "RefreshController",
    "RefreshFailedNoDataError",
]
