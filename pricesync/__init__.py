"""Supplier-to-marketplace price synchronization."""

__version__ = "0.1.0"
