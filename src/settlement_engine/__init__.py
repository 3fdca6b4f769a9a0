"""Checkout settlement engine.

Converts provider checkout sessions into exactly-once credits of in-game
currency.
"""

__version__ = "0.1.0"
