"""Tiered token locking ledger with multi-token pro-rata rewards."""

__version__ = "0.3.0"
