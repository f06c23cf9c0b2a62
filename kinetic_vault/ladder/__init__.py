"""Ladder — лестница эпох разной длительности."""

from .allocator import LadderAllocator

__all__ = ["LadderAllocator"]
