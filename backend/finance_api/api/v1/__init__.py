# finance_api.api.v1 package - one router module per resource; main.py mounts them.
from . import accounts, auth, budgets, categories, health, receipts, reports, transactions, transfers, users

__all__ = [
    "accounts",
    "auth",
    "budgets",
    "categories",
    "health",
    "receipts",
    "reports",
    "transactions",
    "transfers",
    "users",
]
