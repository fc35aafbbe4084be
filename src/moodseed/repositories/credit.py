"""Credit transaction repository.

Append-only access to the ledger table. Rows are inserted and read, never
updated or deleted.
"""

from sqlalchemy import case, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from moodseed.models.credit import CreditTransaction, CreditTransactionType


class CreditTransactionRepository:
    """Repository for CreditTransaction entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_organization(self, organization_id: str) -> None:
        """Serialize ledger writers of one organization for this transaction.

        On PostgreSQL takes a transaction-scoped advisory lock keyed by the
        organization id; released automatically on commit or rollback. Other
        dialects rely on the in-process lock held by the ledger.
        """
        if self.session.bind.dialect.name != "postgresql":
            return
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:organization_id))"),
            {"organization_id": organization_id},
        )

    async def get_balance(self, organization_id: str) -> int:
        """Compute the available balance with a single aggregate query.

        Grants and refunds add to the balance, usage consumes it.

        Args:
            organization_id: Organization whose ledger is summed

        Returns:
            Available balance in credits
        """
        signed_amount = case(
            (
                CreditTransaction.type == CreditTransactionType.USAGE,  # type: ignore[arg-type]
                -CreditTransaction.amount,  # type: ignore[operator]
            ),
            else_=CreditTransaction.amount,
        )
        result = await self.session.execute(
            select(func.coalesce(func.sum(signed_amount), 0)).where(
                CreditTransaction.organization_id == organization_id  # type: ignore[arg-type]
            )
        )
        return int(result.scalar_one())

    async def append(self, transaction: CreditTransaction) -> CreditTransaction:
        """Insert a new ledger row.

        Raises:
            ValueError: If amount is not positive
        """
        if transaction.amount <= 0:
            raise ValueError("amount must be a positive number of credits")
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def get_by_reference(
        self, reference_id: str, transaction_type: CreditTransactionType
    ) -> list[CreditTransaction]:
        """Retrieve rows of one type tied to a reference id, oldest first."""
        result = await self.session.execute(
            select(CreditTransaction)
            .where(CreditTransaction.reference_id == reference_id)  # type: ignore[arg-type]
            .where(CreditTransaction.type == transaction_type)  # type: ignore[arg-type]
            .order_by(CreditTransaction.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def count_by_type(self, organization_id: str, transaction_type: CreditTransactionType) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(CreditTransaction)
            .where(CreditTransaction.organization_id == organization_id)  # type: ignore[arg-type]
            .where(CreditTransaction.type == transaction_type)  # type: ignore[arg-type]
        )
        return result.scalar_one()

    async def list_by_organization(
        self,
        organization_id: str,
        offset: int = 0,
        limit: int = 50,
        transaction_type: CreditTransactionType | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        """Retrieve an organization's ledger newest first with the total count.

        Args:
            organization_id: Organization whose rows are listed
            offset: Number of rows to skip
            limit: Maximum number of rows to return
            transaction_type: Restrict to one type (optional)

        Returns:
            Tuple of (transactions, total matching count)
        """
        query = select(CreditTransaction).where(
            CreditTransaction.organization_id == organization_id  # type: ignore[arg-type]
        )
        count_query = (
            select(func.count())
            .select_from(CreditTransaction)
            .where(CreditTransaction.organization_id == organization_id)  # type: ignore[arg-type]
        )
        if transaction_type is not None:
            query = query.where(CreditTransaction.type == transaction_type)  # type: ignore[arg-type]
            count_query = count_query.where(CreditTransaction.type == transaction_type)  # type: ignore[arg-type]

        result = await self.session.execute(
            query.order_by(CreditTransaction.created_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        total = (await self.session.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total
