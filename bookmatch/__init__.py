"""Reconciliation matching service for a double-entry ledger."""

__version__ = "0.1.0"
