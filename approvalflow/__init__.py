"""Maker-checker approval service for insurance reference data."""

__version__ = "0.3.0"
