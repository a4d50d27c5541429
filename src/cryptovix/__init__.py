"""
CryptoVIX

Cross-venue crypto volatility index built from Deribit DVOL and the Bybit
ATM 30-day implied volatility.
"""

__version__ = "0.1.0"
