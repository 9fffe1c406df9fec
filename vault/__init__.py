"""
Vault - Personal Finance Core

Tracks expenses, incomes, fixed bills, savings goals and split expenses
on top of a remote document store.

DESIGN PRINCIPLES:
1. Aggregation and settlement are pure functions over materialized records
2. Bad records are reported, never fatal
3. Programmer errors fail fast
4. No global state: the record store is always injected
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Vault Team"
