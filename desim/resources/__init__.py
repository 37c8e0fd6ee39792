"""Resources, stores and containers built on scheduler signals."""

from .resources import Resource, Store, Container

__all__ = ["Resource", "Store", "Container"]
