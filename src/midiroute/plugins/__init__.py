"""
Surface plugins for midiroute.

This package contains layouts for control surfaces that have their own
preference tree.
"""

from .loupedeck_plus import LoupedeckPlusPlugin

__all__ = [
    "LoupedeckPlusPlugin",
]
