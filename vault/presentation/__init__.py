"""Screen-level flows over the record store and the engines."""

from vault.presentation.dashboard import (
    DashboardView,
    ExpensesView,
    FinanceDashboard,
    create_dashboard,
)

__all__ = [
    "DashboardView",
    "ExpensesView",
    "FinanceDashboard",
    "create_dashboard",
]
