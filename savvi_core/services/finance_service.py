# =============================================================================
# savvi_core/services/finance_service.py
# Write paths for buckets, transactions, goals and debts
# =============================================================================
"""
FinanceService - create/update/delete rows in the four collections.

This is where derived values are maintained: a transaction moves its bucket's
balance (income +, expense -) and an optional goal allocation adds to the
goal's current amount. The state machine never recomputes them; callers
refresh the snapshot after a successful write.
"""

from __future__ import annotations
from datetime import date
from typing import Any, Dict, Optional

from savvi_core.data.models import (
    DataSnapshot,
    Debt,
    DebtType,
    Transaction,
    TransactionType,
)
from savvi_core.data.supabase_client import RemoteDataClient
from savvi_core.errors import ValidationError
from savvi_core.services.base_service import BaseService, ServiceResult


def _parse_amount(value: Any, field: str, required: bool = True) -> Optional[float]:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field, value=value)
    if amount < 0:
        raise ValidationError(f"{field} must not be negative", field=field, value=value)
    return amount


def _require_text(value: Any, field: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _require_choice(value: Any, field: str, enum_cls) -> str:
    choices = [member.value for member in enum_cls]
    if value not in choices:
        raise ValidationError(f"{field} must be one of {choices}", field=field, value=value)
    return value


class FinanceService(BaseService):
    """
    Usage:
        service = FinanceService(context.remote, user.id)
        result = await service.save_transaction(form, machine.snapshot)
        if result:
            await machine.refresh_data()
    """

    def __init__(self, remote: RemoteDataClient, user_id: str):
        super().__init__()
        self.remote = remote
        self.user_id = user_id

    # =========================================================================
    # MONEY BUCKETS
    # =========================================================================

    async def save_bucket(
        self,
        name: str,
        balance: Any,
        bucket_id: Optional[str] = None,
    ) -> ServiceResult:
        try:
            row = {
                "name": _require_text(name, "name"),
                "balance": _parse_amount(balance, "balance"),
                "user_id": self.user_id,
            }
        except ValidationError as e:
            return ServiceResult.fail(e.message, "VALIDATION", metadata=e.details)

        if bucket_id:
            return await self.safe_execute("Updating bucket", self.remote.update_by_id, "money_buckets", bucket_id, row)
        return await self.safe_execute("Creating bucket", self.remote.insert, "money_buckets", row)

    async def delete_bucket(self, bucket_id: str) -> ServiceResult:
        return await self.safe_execute("Deleting bucket", self.remote.delete_by_id, "money_buckets", bucket_id)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def build_transaction_row(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate form values into a `transactions` row."""
        goal_id = data.get("goal_id") or None
        allocation = _parse_amount(data.get("goal_allocation"), "goal_allocation", required=False)
        return {
            "amount": _parse_amount(data.get("amount"), "amount"),
            "type": _require_choice(data.get("type"), "type", TransactionType),
            "category": _require_text(data.get("category"), "category"),
            "description": (data.get("description") or "").strip() or None,
            "date": str(data.get("date") or date.today().isoformat()),
            "bucket_id": _require_text(data.get("bucket_id"), "bucket_id"),
            "goal_allocation": allocation,
            "goal_id": goal_id,
            "user_id": self.user_id,
        }

    async def _write_transaction(
        self,
        row: Dict[str, Any],
        snapshot: DataSnapshot,
        transaction_id: Optional[str],
    ) -> Dict[str, Any]:
        if transaction_id:
            await self.remote.update_by_id("transactions", transaction_id, row)
        else:
            await self.remote.insert("transactions", row)

        updates: Dict[str, Any] = {}
        signed = row["amount"] if row["type"] == TransactionType.INCOME.value else -row["amount"]

        # An edit first takes the old amount back out of its bucket
        previous = next((t for t in snapshot.transactions if t.id == transaction_id), None) if transaction_id else None
        if previous is not None:
            old_bucket = snapshot.find_bucket(previous.bucket_id)
            if old_bucket is not None and old_bucket.id != row["bucket_id"]:
                await self.remote.update_by_id(
                    "money_buckets",
                    old_bucket.id,
                    {"balance": old_bucket.balance - previous.signed_amount},
                )
            elif old_bucket is not None:
                signed -= previous.signed_amount

        bucket = snapshot.find_bucket(row["bucket_id"])
        if bucket is not None:
            new_balance = bucket.balance + signed
            await self.remote.update_by_id("money_buckets", bucket.id, {"balance": new_balance})
            updates["balance"] = new_balance

        if row["goal_id"] and row["goal_allocation"]:
            goal = snapshot.find_goal(row["goal_id"])
            if goal is not None:
                new_amount = goal.current_amount + row["goal_allocation"]
                await self.remote.update_by_id(
                    "goals",
                    goal.id,
                    {
                        "current_amount": new_amount,
                        "completed": new_amount >= goal.target_amount,
                    },
                )
                updates["current_amount"] = new_amount

        return updates

    async def save_transaction(
        self,
        data: Dict[str, Any],
        snapshot: DataSnapshot,
        transaction_id: Optional[str] = None,
    ) -> ServiceResult:
        """
        Insert or update a transaction, then book it against its bucket and goal.

        Returns:
            ServiceResult whose data holds the new bucket balance / goal amount
        """
        try:
            row = self.build_transaction_row(data)
        except ValidationError as e:
            return ServiceResult.fail(e.message, "VALIDATION", metadata=e.details)

        return await self.safe_execute("Saving transaction", self._write_transaction, row, snapshot, transaction_id)

    async def _remove_transaction(self, transaction: Transaction, snapshot: DataSnapshot) -> Optional[float]:
        await self.remote.delete_by_id("transactions", transaction.id)

        bucket = snapshot.find_bucket(transaction.bucket_id)
        if bucket is None:
            return None
        new_balance = bucket.balance - transaction.signed_amount
        await self.remote.update_by_id("money_buckets", bucket.id, {"balance": new_balance})
        return new_balance

    async def delete_transaction(self, transaction: Transaction, snapshot: DataSnapshot) -> ServiceResult:
        """Delete a transaction and reverse its effect on the bucket balance."""
        return await self.safe_execute("Deleting transaction", self._remove_transaction, transaction, snapshot)

    # =========================================================================
    # GOALS
    # =========================================================================

    async def save_goal(
        self,
        title: str,
        target_amount: Any,
        goal_id: Optional[str] = None,
        current_amount: float = 0.0,
    ) -> ServiceResult:
        try:
            row = {
                "title": _require_text(title, "title"),
                "target_amount": _parse_amount(target_amount, "target_amount"),
                "current_amount": current_amount if goal_id else 0.0,
                "completed": False,
                "user_id": self.user_id,
            }
        except ValidationError as e:
            return ServiceResult.fail(e.message, "VALIDATION", metadata=e.details)

        if goal_id:
            return await self.safe_execute("Updating goal", self.remote.update_by_id, "goals", goal_id, row)
        return await self.safe_execute("Creating goal", self.remote.insert, "goals", row)

    async def delete_goal(self, goal_id: str) -> ServiceResult:
        return await self.safe_execute("Deleting goal", self.remote.delete_by_id, "goals", goal_id)

    # =========================================================================
    # DEBTS
    # =========================================================================

    async def save_debt(
        self,
        amount: Any,
        person_name: str,
        debt_type: str,
        due_date: Optional[str] = None,
        debt_id: Optional[str] = None,
    ) -> ServiceResult:
        try:
            row = {
                "amount": _parse_amount(amount, "amount"),
                "person_name": _require_text(person_name, "person_name"),
                "due_date": str(due_date) if due_date else None,
                "type": _require_choice(debt_type, "type", DebtType),
                "paid": False,
                "user_id": self.user_id,
            }
        except ValidationError as e:
            return ServiceResult.fail(e.message, "VALIDATION", metadata=e.details)

        if debt_id:
            return await self.safe_execute("Updating debt", self.remote.update_by_id, "debts", debt_id, row)
        return await self.safe_execute("Creating debt", self.remote.insert, "debts", row)

    async def toggle_debt_paid(self, debt: Debt) -> ServiceResult:
        return await self.safe_execute(
            "Updating debt status",
            self.remote.update_by_id,
            "debts",
            debt.id,
            {"paid": not debt.paid},
        )

    async def delete_debt(self, debt_id: str) -> ServiceResult:
        return await self.safe_execute("Deleting debt", self.remote.delete_by_id, "debts", debt_id)
