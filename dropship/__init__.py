"""Supplier extraction and dropship fulfillment service."""

__version__ = "0.1.0"
