"""
Parameter filler public API.

Importing this package registers the built-in fillers (``constant``,
``gaussian``, ``uniform``, ``xavier``) into the `Filler` registry via import
side effects and re-exports the dispatcher.
"""

from ._fillers import *
from ._base import Filler

__all__ = [
    Filler.__name__,
]
