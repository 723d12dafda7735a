"""
Gesture-driven formation engine.

Turns a noisy hand-tracking signal into stable CHAOS/FORMED layout changes
and blends thousands of animated entities between the two layouts.
"""

__version__ = "1.0.0"
