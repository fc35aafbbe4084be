"""Credit ledger: append-only balance accounting per organization.

Credits are deducted before a unit of work starts and refunded when it fails.
Every call appends exactly one immutable row; the balance is always derived
from the rows, never stored.
"""

import asyncio
from uuid import UUID

import structlog

from moodseed.models.credit import GRANT_TYPES, CreditTransaction, CreditTransactionType
from moodseed.services.exceptions import InsufficientCreditsError, RefundNotAllowedError

logger = structlog.get_logger()


class CreditLedger:
    """Ledger service; the only writer of credit transactions.

    Check-then-write sequences of one organization are serialized by an
    in-process lock and, on PostgreSQL, by a transaction-scoped advisory lock,
    so two concurrent batches can never both pass the same balance check.
    """

    def __init__(self, uow_factory):
        """Initialize ledger.

        Args:
            uow_factory: Factory producing UnitOfWork instances
        """
        self.uow_factory = uow_factory
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, organization_id: str) -> asyncio.Lock:
        return self._locks.setdefault(organization_id, asyncio.Lock())

    async def get_balance(self, organization_id: str) -> int:
        async with await self.uow_factory() as uow:
            return await uow.credits.get_balance(organization_id)

    async def has_sufficient_balance(self, organization_id: str, amount: int) -> bool:
        """Read-only balance check."""
        return await self.get_balance(organization_id) >= amount

    async def deduct(
        self,
        organization_id: str,
        amount: int,
        reference_id: str,
        reference_type: str = "execution_unit",
        description: str | None = None,
    ) -> UUID:
        """Append a usage row if the balance covers the amount.

        Args:
            organization_id: Organization to charge
            amount: Positive number of credits
            reference_id: Identifier of the work being paid for
            reference_type: Kind of work the reference points at
            description: Human-readable note (optional)

        Returns:
            Id of the usage transaction

        Raises:
            InsufficientCreditsError: If balance < amount at call time
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError("amount must be a positive number of credits")

        async with self._lock_for(organization_id):
            async with await self.uow_factory() as uow:
                await uow.credits.lock_organization(organization_id)
                balance = await uow.credits.get_balance(organization_id)
                if balance < amount:
                    raise InsufficientCreditsError(required=amount, available=balance)

                transaction = await uow.credits.append(
                    CreditTransaction(
                        organization_id=organization_id,
                        type=CreditTransactionType.USAGE,
                        amount=amount,
                        reference_id=reference_id,
                        reference_type=reference_type,
                        description=description,
                    )
                )
                transaction_id = transaction.id

        logger.info(
            "ledger.deducted",
            organization_id=organization_id,
            amount=amount,
            reference_id=reference_id,
            balance_after=balance - amount,
        )
        return transaction_id

    async def refund(
        self,
        organization_id: str,
        amount: int,
        reference_id: str,
        reference_type: str = "execution_unit",
        description: str | None = None,
    ) -> UUID:
        """Append a refund row reversing exactly one prior usage.

        Callers check has_refund() first; the ledger still refuses a refund
        that has no matching usage, differs in amount, or would be the second
        refund for the reference.

        Returns:
            Id of the refund transaction

        Raises:
            RefundNotAllowedError: If no matching usage exists or it was already refunded
        """
        async with self._lock_for(organization_id):
            async with await self.uow_factory() as uow:
                await uow.credits.lock_organization(organization_id)

                usages = await uow.credits.get_by_reference(reference_id, CreditTransactionType.USAGE)
                usages = [tx for tx in usages if tx.organization_id == organization_id]
                if not usages:
                    raise RefundNotAllowedError(f"No usage recorded for reference {reference_id}")
                if usages[0].amount != amount:
                    raise RefundNotAllowedError(
                        f"Refund amount {amount} does not match usage amount "
                        f"{usages[0].amount} for reference {reference_id}"
                    )

                refunds = await uow.credits.get_by_reference(reference_id, CreditTransactionType.REFUND)
                if refunds:
                    raise RefundNotAllowedError(f"Reference {reference_id} was already refunded")

                transaction = await uow.credits.append(
                    CreditTransaction(
                        organization_id=organization_id,
                        type=CreditTransactionType.REFUND,
                        amount=amount,
                        reference_id=reference_id,
                        reference_type=reference_type,
                        description=description,
                    )
                )
                transaction_id = transaction.id

        logger.info(
            "ledger.refunded",
            organization_id=organization_id,
            amount=amount,
            reference_id=reference_id,
        )
        return transaction_id

    async def has_refund(self, reference_id: str) -> bool:
        async with await self.uow_factory() as uow:
            refunds = await uow.credits.get_by_reference(reference_id, CreditTransactionType.REFUND)
            return bool(refunds)

    async def get_usage(self, reference_id: str) -> CreditTransaction | None:
        """Return the usage row for a reference, if one was recorded."""
        async with await self.uow_factory() as uow:
            usages = await uow.credits.get_by_reference(reference_id, CreditTransactionType.USAGE)
            return usages[0] if usages else None

    async def add_credits(
        self,
        organization_id: str,
        amount: int,
        transaction_type: CreditTransactionType = CreditTransactionType.PURCHASE,
        description: str | None = None,
        reference_id: str | None = None,
    ) -> UUID:
        """Grant credits to an organization.

        Raises:
            ValueError: If amount is not positive or the type is not a grant type
        """
        if amount <= 0:
            raise ValueError("amount must be a positive number of credits")
        if transaction_type not in GRANT_TYPES:
            raise ValueError(f"{transaction_type.value} is not a grant type")

        async with self._lock_for(organization_id):
            async with await self.uow_factory() as uow:
                transaction = await uow.credits.append(
                    CreditTransaction(
                        organization_id=organization_id,
                        type=transaction_type,
                        amount=amount,
                        reference_id=reference_id,
                        reference_type="grant",
                        description=description,
                    )
                )
                transaction_id = transaction.id

        logger.info(
            "ledger.credits_added",
            organization_id=organization_id,
            amount=amount,
            type=transaction_type.value,
        )
        return transaction_id

    async def list_transactions(
        self,
        organization_id: str,
        offset: int = 0,
        limit: int = 50,
        transaction_type: CreditTransactionType | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        async with await self.uow_factory() as uow:
            return await uow.credits.list_by_organization(
                organization_id, offset=offset, limit=limit, transaction_type=transaction_type
            )
