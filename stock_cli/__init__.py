"""Operator command-line tools for the stock ledger."""
