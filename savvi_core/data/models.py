# =============================================================================
# savvi_core/data/models.py
# Finance entities and the Data Snapshot
# =============================================================================
"""
Row models for the four Supabase collections plus the cached user identity.

Rows keep any column they do not know about in `extra`, so a snapshot written
to the offline cache and read back is identical to what was fetched.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, TypeVar

R = TypeVar("R", bound="RowModel")


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class DebtType(str, Enum):
    OWED_BY_ME = "owed_by_me"
    OWED_TO_ME = "owed_to_me"


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return _to_float(value)


class RowModel:
    """Shared row <-> dataclass conversion for the collection models."""

    NUMERIC_FIELDS: ClassVar[tuple] = ()
    OPTIONAL_NUMERIC_FIELDS: ClassVar[tuple] = ()
    BOOL_FIELDS: ClassVar[tuple] = ()

    @classmethod
    def from_row(cls: Type[R], row: Dict[str, Any]) -> R:
        known = {f.name for f in fields(cls) if f.name != "extra"}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}

        for key, value in row.items():
            if key in known:
                values[key] = value
            else:
                extra[key] = value

        for name in cls.NUMERIC_FIELDS:
            values[name] = _to_float(values.get(name))
        for name in cls.OPTIONAL_NUMERIC_FIELDS:
            values[name] = _to_optional_float(values.get(name))
        for name in cls.BOOL_FIELDS:
            values[name] = bool(values.get(name, False))

        values.setdefault("id", "")
        return cls(**values, extra=extra)

    def to_row(self) -> Dict[str, Any]:
        row = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra"
        }
        row.update(self.extra)
        return row


@dataclass
class MoneyBucket(RowModel):
    id: str
    name: str = ""
    balance: float = 0.0
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    NUMERIC_FIELDS: ClassVar[tuple] = ("balance",)


@dataclass
class Transaction(RowModel):
    id: str
    amount: float = 0.0
    type: str = TransactionType.EXPENSE.value
    category: str = ""
    description: Optional[str] = None
    date: Optional[str] = None
    bucket_id: Optional[str] = None
    goal_id: Optional[str] = None
    goal_allocation: Optional[float] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    NUMERIC_FIELDS: ClassVar[tuple] = ("amount",)
    OPTIONAL_NUMERIC_FIELDS: ClassVar[tuple] = ("goal_allocation",)

    @property
    def signed_amount(self) -> float:
        """Amount as booked against the bucket balance."""
        if self.type == TransactionType.INCOME.value:
            return self.amount
        return -self.amount


@dataclass
class Goal(RowModel):
    id: str
    title: str = ""
    target_amount: float = 0.0
    current_amount: float = 0.0
    completed: bool = False
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    NUMERIC_FIELDS: ClassVar[tuple] = ("target_amount", "current_amount")
    BOOL_FIELDS: ClassVar[tuple] = ("completed",)

    @property
    def progress(self) -> float:
        """Fraction of the target reached, capped at 1.0."""
        if self.target_amount <= 0:
            return 1.0 if self.completed else 0.0
        return min(self.current_amount / self.target_amount, 1.0)


@dataclass
class Debt(RowModel):
    id: str
    amount: float = 0.0
    person_name: str = ""
    due_date: Optional[str] = None
    type: str = DebtType.OWED_BY_ME.value
    paid: bool = False
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    NUMERIC_FIELDS: ClassVar[tuple] = ("amount",)
    BOOL_FIELDS: ClassVar[tuple] = ("paid",)


# Snapshot field -> (Supabase table, row model)
COLLECTIONS: Dict[str, tuple] = {
    "buckets": ("money_buckets", MoneyBucket),
    "transactions": ("transactions", Transaction),
    "goals": ("goals", Goal),
    "debts": ("debts", Debt),
}


@dataclass
class DataSnapshot:
    """All of one user's buckets, transactions, goals and debts at one moment."""
    buckets: List[MoneyBucket] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    goals: List[Goal] = field(default_factory=list)
    debts: List[Debt] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DataSnapshot:
        kwargs = {}
        for name, (_, model) in COLLECTIONS.items():
            rows = data.get(name) or []
            kwargs[name] = [model.from_row(row) for row in rows]
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            name: [row.to_row() for row in getattr(self, name)]
            for name in COLLECTIONS
        }

    def counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in COLLECTIONS}

    def is_empty(self) -> bool:
        return not any(self.counts().values())

    def find_bucket(self, bucket_id: Optional[str]) -> Optional[MoneyBucket]:
        return next((b for b in self.buckets if b.id == bucket_id), None)

    def find_goal(self, goal_id: Optional[str]) -> Optional[Goal]:
        return next((g for g in self.goals if g.id == goal_id), None)


@dataclass
class UserIdentity:
    """The client's cached, possibly stale, copy of the signed-in user."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_user(cls, user: Any) -> Optional[UserIdentity]:
        """
        Build from a Supabase `User` (pydantic model) or a cached dict.

        Returns None for a missing user.
        """
        if user is None:
            return None

        if isinstance(user, dict):
            data = user
        elif hasattr(user, "model_dump"):
            data = user.model_dump(mode="json")
        else:
            data = {
                "id": getattr(user, "id", None),
                "email": getattr(user, "email", None),
                "user_metadata": getattr(user, "user_metadata", None),
            }

        if not data.get("id"):
            return None

        metadata = dict(data.get("user_metadata") or data.get("metadata") or {})
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            name=data.get("name") or metadata.get("name"),
            avatar=data.get("avatar") or metadata.get("avatar"),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar": self.avatar,
            "user_metadata": self.metadata,
        }
