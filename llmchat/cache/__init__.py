"""Adaptive caching primitives."""

from .adaptive import AdaptiveTtlPolicy, CacheTtlState
from .store import AdaptiveTTLCache


__all__ = ["AdaptiveTtlPolicy", "AdaptiveTTLCache", "CacheTtlState"]
