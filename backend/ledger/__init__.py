"""Ledger posting and integrity core for a multi-tenant bookkeeping API."""

__version__ = "1.0.0"
