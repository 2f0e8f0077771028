"""Expose desktop entries and icons from containers to the host session."""

__version__ = "0.3.0"
