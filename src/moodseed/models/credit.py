"""CreditTransaction entity - Append-only credit ledger entry."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from moodseed.core.timezone import utcnow


class CreditTransactionType(str, Enum):
    """Ledger entry type."""

    USAGE = "usage"
    REFUND = "refund"
    PURCHASE = "purchase"
    BONUS = "bonus"


GRANT_TYPES = frozenset({CreditTransactionType.PURCHASE, CreditTransactionType.BONUS})


class CreditTransaction(SQLModel, table=True):
    """CreditTransaction is one immutable row of an organization's credit ledger.

    Amounts are always positive; the type decides whether the row adds to or
    consumes the balance. Rows are never updated or deleted.
    """

    __tablename__ = "credit_transactions"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: str = Field(max_length=255, index=True)
    type: CreditTransactionType = Field(index=True)
    amount: int = Field(gt=0)
    reference_id: Optional[str] = Field(default=None, max_length=255, index=True)
    reference_type: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow, index=True)
