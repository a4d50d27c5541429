"""
CryptoVIX Data Package

Delta Lake persistence for index readings.
"""

from cryptovix.data.readings import VixReadingsTable

__all__ = ["VixReadingsTable"]
