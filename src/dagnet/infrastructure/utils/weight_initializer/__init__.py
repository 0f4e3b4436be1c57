"""
Weight initialization public API.

Importing this package registers the built-in initializers (``gaussian``,
``xavier``, ``zeros``) into the `WeightInitializer` registry via import side
effects.
"""

from ._strategies import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
]
