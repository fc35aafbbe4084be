"""Repository tests: candidate selection, checkpoints, history and ledger queries."""

from uuid import uuid4

import pytest

from conftest import seed_sub_categories
from moodseed.models.catalog import Style, SubCategory
from moodseed.models.credit import CreditTransaction, CreditTransactionType
from moodseed.models.execution import Execution, ExecutionConfig, ExecutionStatus


async def add_style(uow_factory, sub_category: SubCategory) -> None:
    async with await uow_factory() as uow:
        await uow.styles.add(
            Style(
                slug=sub_category.slug,
                name=sub_category.name,
                sub_category_id=sub_category.id,
                approach="minimalist",
                color="sage",
            )
        )


@pytest.mark.asyncio
async def test_candidates_exclude_styled_sub_categories(uow_factory):
    sub_categories = await seed_sub_categories(uow_factory, 4)
    await add_style(uow_factory, sub_categories[1])

    async with await uow_factory() as uow:
        candidates = await uow.executions.list_candidate_units(ExecutionConfig())

    assert [unit.slug for unit in candidates.units] == ["style-00", "style-02", "style-03"]
    assert candidates.already_done == 1
    assert candidates.total == 3


@pytest.mark.asyncio
async def test_candidates_limit_applies_to_pending_units(uow_factory):
    sub_categories = await seed_sub_categories(uow_factory, 4)
    await add_style(uow_factory, sub_categories[0])

    async with await uow_factory() as uow:
        candidates = await uow.executions.list_candidate_units(ExecutionConfig(limit=2))

    assert [unit.slug for unit in candidates.units] == ["style-01", "style-02"]
    assert candidates.already_done == 1


@pytest.mark.asyncio
async def test_candidates_filter_by_category(uow_factory):
    await seed_sub_categories(uow_factory, 2, category_slug="modern")
    async with await uow_factory() as uow:
        await uow.sub_categories.add(
            SubCategory(slug="baroque", name="Baroque", category_slug="historic", order=0)
        )

    async with await uow_factory() as uow:
        candidates = await uow.executions.list_candidate_units(
            ExecutionConfig(category_filter="historic")
        )

    assert [unit.slug for unit in candidates.units] == ["baroque"]
    assert candidates.units[0].category_slug == "historic"


@pytest.mark.asyncio
async def test_explicit_sub_category_is_selected_even_when_styled(uow_factory):
    sub_categories = await seed_sub_categories(uow_factory, 2)
    await add_style(uow_factory, sub_categories[0])

    async with await uow_factory() as uow:
        candidates = await uow.executions.list_candidate_units(
            ExecutionConfig(sub_category_filter="style-00")
        )

    assert [unit.unit_id for unit in candidates.units] == [str(sub_categories[0].id)]
    assert candidates.already_done == 0


@pytest.mark.asyncio
async def test_save_writes_detached_execution_as_one_checkpoint(uow_factory):
    execution = Execution(organization_id="org", candidate_unit_ids=["a", "b"])
    async with await uow_factory() as uow:
        await uow.executions.add(execution)
    created_updated_at = execution.updated_at

    execution.mark_running()
    execution.bump_stats(created=1)
    async with await uow_factory() as uow:
        await uow.executions.save(execution)

    async with await uow_factory() as uow:
        stored = await uow.executions.get_by_id(execution.id)

    assert stored.status == ExecutionStatus.RUNNING
    assert stored.execution_stats.created == 1
    assert stored.candidate_unit_ids == ["a", "b"]
    assert stored.updated_at >= created_updated_at


@pytest.mark.asyncio
async def test_failed_transaction_leaves_previous_checkpoint(uow_factory):
    execution = Execution(organization_id="org")
    async with await uow_factory() as uow:
        await uow.executions.add(execution)

    execution.mark_running()
    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            await uow.executions.save(execution)
            raise RuntimeError("crash before commit")

    async with await uow_factory() as uow:
        stored = await uow.executions.get_by_id(execution.id)
    assert stored.status == ExecutionStatus.PENDING


@pytest.mark.asyncio
async def test_get_by_id_returns_none_for_unknown_execution(uow_factory):
    async with await uow_factory() as uow:
        assert await uow.executions.get_by_id(uuid4()) is None


@pytest.mark.asyncio
async def test_list_paginated_filters_and_counts(uow_factory):
    async with await uow_factory() as uow:
        for index in range(5):
            execution = Execution(organization_id="org-a" if index < 4 else "org-b")
            if index % 2:
                execution.status = ExecutionStatus.COMPLETED
            await uow.executions.add(execution)

    async with await uow_factory() as uow:
        page, total = await uow.executions.list_paginated(organization_id="org-a", limit=3)
        completed, completed_total = await uow.executions.list_paginated(
            status=ExecutionStatus.COMPLETED
        )

    assert total == 4
    assert len(page) == 3
    assert completed_total == 2
    assert all(execution.status == ExecutionStatus.COMPLETED for execution in completed)


@pytest.mark.asyncio
async def test_get_by_status(uow_factory):
    async with await uow_factory() as uow:
        await uow.executions.add(Execution(organization_id="org", status=ExecutionStatus.RUNNING))
        await uow.executions.add(Execution(organization_id="org"))

    async with await uow_factory() as uow:
        running = await uow.executions.get_by_status(ExecutionStatus.RUNNING)

    assert len(running) == 1


@pytest.mark.asyncio
async def test_credit_balance_query_signs_usage_negative(uow_factory):
    async with await uow_factory() as uow:
        for tx_type, amount in [
            (CreditTransactionType.PURCHASE, 50),
            (CreditTransactionType.BONUS, 5),
            (CreditTransactionType.USAGE, 20),
            (CreditTransactionType.REFUND, 20),
            (CreditTransactionType.USAGE, 7),
        ]:
            await uow.credits.append(
                CreditTransaction(organization_id="org", type=tx_type, amount=amount)
            )

    async with await uow_factory() as uow:
        assert await uow.credits.get_balance("org") == 48
        assert await uow.credits.get_balance("someone-else") == 0
        assert await uow.credits.count_by_type("org", CreditTransactionType.USAGE) == 2


@pytest.mark.asyncio
async def test_credit_append_rejects_non_positive_amount(uow_factory):
    with pytest.raises(ValueError):
        async with await uow_factory() as uow:
            await uow.credits.append(
                CreditTransaction(organization_id="org", type=CreditTransactionType.BONUS, amount=0)
            )
