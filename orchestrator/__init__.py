"""
Orchestrator Package.

Wiring, logging setup and the command-line entry point.

Modules:
- core: Runtime (dependency wiring) and setup_logging
- cli: argparse commands
"""

from .core import DailyRunResult, Runtime, setup_logging

__all__ = [
    "DailyRunResult",
    "Runtime",
    "setup_logging",
]
