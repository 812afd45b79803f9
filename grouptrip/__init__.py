"""Group vacation ledger: activities, expenses and balance reconciliation."""

__version__ = "0.1.0"
