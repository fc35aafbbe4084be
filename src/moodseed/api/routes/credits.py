"""Credit balance API endpoints.

- GET /api/credits/{organization_id} - Current balance
- GET /api/credits/{organization_id}/transactions - Paginated ledger history
- POST /api/credits/{organization_id} - Grant credits (purchase or bonus)
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from moodseed.api.dependencies import get_ledger
from moodseed.models.credit import CreditTransactionType
from moodseed.services.credits.ledger import CreditLedger

logger = structlog.get_logger()
router = APIRouter(prefix="/api/credits", tags=["credits"])


class BalanceResponse(BaseModel):
    organization_id: str
    balance: int


class GrantCreditsRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Credits to add")
    type: CreditTransactionType = Field(
        default=CreditTransactionType.PURCHASE, description="purchase or bonus"
    )
    description: str | None = Field(default=None, max_length=500)


class GrantCreditsResponse(BaseModel):
    transaction_id: UUID
    balance: int


class TransactionDTO(BaseModel):
    """Data Transfer Object for one ledger row."""

    id: UUID
    type: CreditTransactionType
    amount: int
    reference_id: str | None = None
    reference_type: str | None = None
    description: str | None = None
    created_at: datetime


class TransactionsResponse(BaseModel):
    transactions: list[TransactionDTO]
    total: int
    offset: int
    limit: int


@router.get("/{organization_id}", response_model=BalanceResponse)
async def get_balance(
    organization_id: str,
    ledger: CreditLedger = Depends(get_ledger),
) -> BalanceResponse:
    balance = await ledger.get_balance(organization_id)
    return BalanceResponse(organization_id=organization_id, balance=balance)


@router.get("/{organization_id}/transactions", response_model=TransactionsResponse)
async def list_transactions(
    organization_id: str,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    type_filter: CreditTransactionType | None = Query(default=None, alias="type"),
    ledger: CreditLedger = Depends(get_ledger),
) -> TransactionsResponse:
    """Ledger history for an organization, newest first."""
    transactions, total = await ledger.list_transactions(
        organization_id, offset=offset, limit=limit, transaction_type=type_filter
    )
    return TransactionsResponse(
        transactions=[TransactionDTO.model_validate(tx, from_attributes=True) for tx in transactions],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.post(
    "/{organization_id}", response_model=GrantCreditsResponse, status_code=status.HTTP_201_CREATED
)
async def grant_credits(
    organization_id: str,
    request: GrantCreditsRequest,
    ledger: CreditLedger = Depends(get_ledger),
) -> GrantCreditsResponse:
    """Add credits to an organization's balance."""
    try:
        transaction_id = await ledger.add_credits(
            organization_id,
            request.amount,
            transaction_type=request.type,
            description=request.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    balance = await ledger.get_balance(organization_id)
    logger.info(
        "api.credits_granted",
        organization_id=organization_id,
        amount=request.amount,
        type=request.type.value,
    )
    return GrantCreditsResponse(transaction_id=transaction_id, balance=balance)
