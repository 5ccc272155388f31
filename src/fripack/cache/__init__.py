"""Engine binary cache APIs."""

from .store import BinaryCache, CacheStats

__all__ = ["BinaryCache", "CacheStats"]
