"""Persistence of bank statements and their lines."""

from .statement_store import StatementStore, to_bank_line, to_summary

__all__ = ["StatementStore", "to_bank_line", "to_summary"]
