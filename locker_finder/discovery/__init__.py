"""Locker discovery engine."""

from locker_finder.discovery.scanner import DiscoveryScanner

__all__ = ["DiscoveryScanner"]
