"""
Monitoring utilities for couchkit.
"""

from couchkit.monitoring.metrics import CONTENT_TYPE_LATEST, generate_latest

__all__ = ["CONTENT_TYPE_LATEST", "generate_latest"]
