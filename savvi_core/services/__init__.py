# =============================================================================
# savvi_core/services/__init__.py
# Service Layer for savviFinance
# Separates finance write paths and dashboard figures from the Streamlit view
# =============================================================================
"""
Service Layer for savviFinance

Usage Example:
-------------
    from savvi_core.services import FinanceService, build_summary

    service = FinanceService(context.remote, user.id)
    result = await service.save_goal("Emergency fund", 5000)
    if result.success:
        await machine.refresh_data()

    summary = build_summary(machine.snapshot)
    print(summary.total_balance, summary.net_debt)
"""

from .base_service import BaseService, ServiceResult
from .finance_service import FinanceService
from .summary_service import (
    DashboardSummary,
    build_summary,
    monthly_totals,
    expense_by_category,
    recent_transactions,
)

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    # Write paths
    "FinanceService",
    # Dashboard figures
    "DashboardSummary",
    "build_summary",
    "monthly_totals",
    "expense_by_category",
    "recent_transactions",
]
