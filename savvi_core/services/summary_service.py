"""
Summary Service - dashboard figures computed from a Data Snapshot.

Balances and goal amounts are read as stored; nothing here rebuilds them
from the transaction list.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

import pandas as pd

from savvi_core.data.models import DataSnapshot, DebtType, TransactionType
from savvi_core.errors import error_boundary


@dataclass
class DashboardSummary:
    """Headline numbers for the dashboard cards."""
    total_balance: float = 0.0
    goal_progress: float = 0.0          # sum of current amounts
    goal_target: float = 0.0            # sum of targets
    owed_by_me: float = 0.0             # unpaid only
    owed_to_me: float = 0.0             # unpaid only
    monthly_income: float = 0.0
    monthly_expense: float = 0.0
    bucket_count: int = 0
    active_goals: int = 0
    completed_goals: int = 0

    @property
    def net_debt(self) -> float:
        """Positive when the user owes more than others owe them."""
        return self.owed_by_me - self.owed_to_me

    @property
    def goal_progress_pct(self) -> float:
        if self.goal_target <= 0:
            return 0.0
        return min(self.goal_progress / self.goal_target * 100, 100.0)


def transactions_frame(snapshot: DataSnapshot) -> pd.DataFrame:
    """Transactions as a DataFrame with a parsed `date` column."""
    columns = ["id", "amount", "type", "category", "description", "date", "bucket_id"]
    if not snapshot.transactions:
        df = pd.DataFrame(columns=columns)
        df["amount"] = df["amount"].astype(float)
        df["date"] = pd.to_datetime(df["date"])
        return df

    df = pd.DataFrame([t.to_row() for t in snapshot.transactions])
    for column in columns:
        if column not in df.columns:
            df[column] = None
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    return df


def monthly_totals(snapshot: DataSnapshot) -> pd.DataFrame:
    """
    Income and expense per calendar month, oldest first.

    Returns:
        DataFrame with columns month (Period), label ("Jan 2024"), income, expense
    """
    df = transactions_frame(snapshot).dropna(subset=["date"])
    if df.empty:
        return pd.DataFrame(columns=["month", "label", "income", "expense"])

    df["month"] = df["date"].dt.to_period("M")
    pivot = (
        df.pivot_table(index="month", columns="type", values="amount", aggfunc="sum", fill_value=0.0)
        .reindex(columns=[TransactionType.INCOME.value, TransactionType.EXPENSE.value], fill_value=0.0)
        .sort_index()
        .reset_index()
    )
    pivot.columns.name = None
    pivot["label"] = pivot["month"].dt.strftime("%b %Y")
    return pivot[["month", "label", "income", "expense"]]


def expense_by_category(snapshot: DataSnapshot) -> pd.Series:
    """Total expense per category, largest first."""
    df = transactions_frame(snapshot)
    expenses = df[df["type"] == TransactionType.EXPENSE.value]
    if expenses.empty:
        return pd.Series(dtype=float, name="amount")
    return expenses.groupby("category")["amount"].sum().sort_values(ascending=False)


def recent_transactions(snapshot: DataSnapshot, limit: int = 5) -> List:
    """Most recent transactions by date, then creation time."""
    return sorted(
        snapshot.transactions,
        key=lambda t: (t.date or "", t.created_at or ""),
        reverse=True,
    )[:limit]


@error_boundary(default_return=DashboardSummary())
def build_summary(snapshot: DataSnapshot, month: Optional[date] = None) -> DashboardSummary:
    """
    Compute the dashboard cards for `snapshot`.

    Args:
        snapshot: Current Data Snapshot
        month: Any date within the month to summarise (default: today)
    """
    month = month or date.today()

    summary = DashboardSummary(
        total_balance=sum(b.balance for b in snapshot.buckets),
        goal_progress=sum(g.current_amount for g in snapshot.goals),
        goal_target=sum(g.target_amount for g in snapshot.goals),
        owed_by_me=sum(
            d.amount for d in snapshot.debts
            if d.type == DebtType.OWED_BY_ME.value and not d.paid
        ),
        owed_to_me=sum(
            d.amount for d in snapshot.debts
            if d.type == DebtType.OWED_TO_ME.value and not d.paid
        ),
        bucket_count=len(snapshot.buckets),
        active_goals=sum(1 for g in snapshot.goals if not g.completed),
        completed_goals=sum(1 for g in snapshot.goals if g.completed),
    )

    totals = monthly_totals(snapshot)
    current = totals[totals["month"] == pd.Period(month, freq="M")]
    if not current.empty:
        summary.monthly_income = float(current["income"].iloc[0])
        summary.monthly_expense = float(current["expense"].iloc[0])

    return summary


def bucket_balances(snapshot: DataSnapshot) -> Dict[str, float]:
    return {b.name: b.balance for b in snapshot.buckets}
