"""Persistence — deployment ledger."""
