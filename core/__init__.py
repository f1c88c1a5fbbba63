"""
Core Module Package.

This package contains the core infrastructure components
that all other packages depend on.

Components:
- clock: Unified time abstraction
- config: Configuration dataclasses
- exceptions: Custom exception hierarchy
- constants: Tracker-wide contracts
"""

from .clock import ClockProtocol, MockClock, SystemClock
from .config import AppConfig
from .constants import TimeWindow
from .exceptions import TrackerException

__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "AppConfig",
    "TimeWindow",
    "TrackerException",
]
