"""
skillpath: adaptive-learning core.

After every practice attempt it estimates mastery, schedules the next review
(SM-2), checks prerequisite blocking and recommends what to work on next.
"""

__version__ = "0.1.0"
