"""Utility functions"""
from .time import utc_now, utc_now_iso, parse_timestamp

__all__ = [
    "utc_now",
    "utc_now_iso",
    "parse_timestamp",
]
