"""CLI command modules."""

from .capsule import capsule
from .recall import recall

__all__ = ["capsule", "recall"]
