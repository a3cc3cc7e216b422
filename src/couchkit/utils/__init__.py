"""
Utility helpers for couchkit.
"""

from .events import EventChannel
from .match_json import match_json
from .mutex import serialized
from .periodic import PeriodicTask
from .periodic_month import PeriodicMonth, pick_month, pick_periodic_month

__all__ = [
    "EventChannel",
    "PeriodicMonth",
    "PeriodicTask",
    "match_json",
    "pick_month",
    "pick_periodic_month",
    "serialized",
]
