"""CycleLedger - inventory costing ledger and production-order engine."""

__version__ = "1.0.0"
