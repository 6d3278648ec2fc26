"""
Umbra node: configuration, clock/scheduler and collaborators.

The composition root lives in umbra.node.layer.
"""

from umbra.node.config import PrivacyConfig
from umbra.node.scheduler import ManualScheduler, ThreadingScheduler

__all__ = [
    "PrivacyConfig",
    "ManualScheduler",
    "ThreadingScheduler",
]
