"""Pooled ACB (adjusted cost base) reconstruction for Kraken ledger exports."""

__version__ = "0.1.0"
