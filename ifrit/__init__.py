"""Ifrit monetization toolkit: CPM prediction, revenue roll-ups and AdSense sync."""

__version__ = "1.0.0"
