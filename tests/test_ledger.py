"""Credit ledger tests.

Balance is always derived from the append-only rows: grants and refunds add,
usage consumes, and a deduction never takes the balance below zero.
"""

import asyncio

import pytest

from moodseed.models.credit import CreditTransactionType
from moodseed.services.exceptions import InsufficientCreditsError, RefundNotAllowedError

ORG = "org-ledger"


@pytest.mark.asyncio
async def test_balance_starts_at_zero(ledger):
    assert await ledger.get_balance(ORG) == 0
    assert await ledger.has_sufficient_balance(ORG, 1) is False


@pytest.mark.asyncio
async def test_grants_usage_and_refunds_sum_to_balance(ledger):
    await ledger.add_credits(ORG, 100)
    await ledger.add_credits(ORG, 20, transaction_type=CreditTransactionType.BONUS)
    await ledger.deduct(ORG, 30, "exec-1:unit-a:1")
    await ledger.deduct(ORG, 25, "exec-1:unit-b:1")
    await ledger.refund(ORG, 25, "exec-1:unit-b:1")

    assert await ledger.get_balance(ORG) == 100 + 20 - 30 - 25 + 25
    assert await ledger.has_sufficient_balance(ORG, 90) is True
    assert await ledger.has_sufficient_balance(ORG, 91) is False


@pytest.mark.asyncio
async def test_deduct_more_than_balance_raises_and_writes_nothing(ledger, uow_factory):
    await ledger.add_credits(ORG, 5)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await ledger.deduct(ORG, 6, "exec-1:unit-a:1")

    assert exc_info.value.required == 6
    assert exc_info.value.available == 5
    assert await ledger.get_balance(ORG) == 5
    async with await uow_factory() as uow:
        assert await uow.credits.count_by_type(ORG, CreditTransactionType.USAGE) == 0


@pytest.mark.asyncio
async def test_deduct_exact_balance_reaches_zero(ledger):
    await ledger.add_credits(ORG, 7)
    await ledger.deduct(ORG, 7, "exec-1:unit-a:1")

    assert await ledger.get_balance(ORG) == 0


@pytest.mark.asyncio
async def test_balances_are_per_organization(ledger):
    await ledger.add_credits("org-a", 10)
    await ledger.add_credits("org-b", 3)
    await ledger.deduct("org-a", 4, "exec-a:unit:1")

    assert await ledger.get_balance("org-a") == 6
    assert await ledger.get_balance("org-b") == 3


@pytest.mark.asyncio
async def test_concurrent_deductions_never_overdraw(ledger):
    """Ten concurrent deductions against a balance of five: exactly five succeed."""
    await ledger.add_credits(ORG, 5)

    results = await asyncio.gather(
        *(ledger.deduct(ORG, 1, f"exec-1:unit-{i}:1") for i in range(10)),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, InsufficientCreditsError)]
    assert len(succeeded) == 5
    assert len(failed) == 5
    assert await ledger.get_balance(ORG) == 0


@pytest.mark.asyncio
async def test_refund_requires_matching_usage(ledger):
    await ledger.add_credits(ORG, 10)

    with pytest.raises(RefundNotAllowedError):
        await ledger.refund(ORG, 3, "exec-1:missing:1")

    await ledger.deduct(ORG, 3, "exec-1:unit-a:1")
    with pytest.raises(RefundNotAllowedError):
        await ledger.refund(ORG, 2, "exec-1:unit-a:1")

    with pytest.raises(RefundNotAllowedError):
        await ledger.refund("org-other", 3, "exec-1:unit-a:1")

    assert await ledger.get_balance(ORG) == 7


@pytest.mark.asyncio
async def test_refund_happens_at_most_once(ledger):
    await ledger.add_credits(ORG, 10)
    await ledger.deduct(ORG, 4, "exec-1:unit-a:1")

    assert await ledger.has_refund("exec-1:unit-a:1") is False
    await ledger.refund(ORG, 4, "exec-1:unit-a:1")
    assert await ledger.has_refund("exec-1:unit-a:1") is True

    with pytest.raises(RefundNotAllowedError):
        await ledger.refund(ORG, 4, "exec-1:unit-a:1")

    assert await ledger.get_balance(ORG) == 10


@pytest.mark.asyncio
async def test_get_usage_returns_recorded_deduction(ledger):
    await ledger.add_credits(ORG, 10)
    await ledger.deduct(ORG, 4, "exec-1:unit-a:1", description="Style generation: Japandi")

    usage = await ledger.get_usage("exec-1:unit-a:1")

    assert usage is not None
    assert usage.amount == 4
    assert usage.type == CreditTransactionType.USAGE
    assert usage.reference_type == "execution_unit"
    assert await ledger.get_usage("exec-1:unit-b:1") is None


@pytest.mark.asyncio
async def test_add_credits_rejects_non_positive_amount(ledger):
    with pytest.raises(ValueError):
        await ledger.add_credits(ORG, 0)
    with pytest.raises(ValueError):
        await ledger.add_credits(ORG, -5)


@pytest.mark.asyncio
async def test_add_credits_rejects_non_grant_type(ledger):
    with pytest.raises(ValueError, match="not a grant type"):
        await ledger.add_credits(ORG, 5, transaction_type=CreditTransactionType.USAGE)

    assert await ledger.get_balance(ORG) == 0


@pytest.mark.asyncio
async def test_deduct_rejects_non_positive_amount(ledger):
    await ledger.add_credits(ORG, 5)

    with pytest.raises(ValueError):
        await ledger.deduct(ORG, 0, "exec-1:unit-a:1")


@pytest.mark.asyncio
async def test_list_transactions_newest_first_with_type_filter(ledger):
    await ledger.add_credits(ORG, 10)
    await ledger.deduct(ORG, 2, "exec-1:unit-a:1")
    await ledger.deduct(ORG, 3, "exec-1:unit-b:1")

    transactions, total = await ledger.list_transactions(ORG)
    assert total == 3
    assert len(transactions) == 3

    usage, usage_total = await ledger.list_transactions(
        ORG, transaction_type=CreditTransactionType.USAGE
    )
    assert usage_total == 2
    assert {tx.reference_id for tx in usage} == {"exec-1:unit-a:1", "exec-1:unit-b:1"}

    page, page_total = await ledger.list_transactions(ORG, offset=0, limit=1)
    assert page_total == 3
    assert len(page) == 1
