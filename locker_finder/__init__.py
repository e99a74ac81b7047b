"""Locker Finder — discover the LP-position locker behind a launched token."""

__version__ = "0.1.0"
