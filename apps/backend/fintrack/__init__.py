"""Personal finance tracking backend: bills, transactions, budgets and reports."""

__version__ = "0.1.0"
