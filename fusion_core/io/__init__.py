"""
I/O Module: Event channels, timers and bounded buffers.

The seams between the engines and the host application: push channels
for outputs, periodic timers for fusion / analysis / cleanup ticks, and
count- and age-bounded sample buffers.
"""

from .buffers import TimedBuffer
from .channel import EventChannel, Subscription
from .scheduler import PeriodicTask

__all__ = [
    'TimedBuffer',
    'EventChannel',
    'Subscription',
    'PeriodicTask',
]
