"""
Test utilities for sessionlock.

Components:
    FakeClock: Manually advanced clock whose ``sleep`` advances time instantly
    InMemoryTestHarness: Every component wired to in-memory stores and one FakeClock

Note:
    This module is intended for test code only.
"""

from sessionlock.testing.clock import DEFAULT_START, FakeClock
from sessionlock.testing.harness import InMemoryTestHarness

__all__ = ["DEFAULT_START", "FakeClock", "InMemoryTestHarness"]
