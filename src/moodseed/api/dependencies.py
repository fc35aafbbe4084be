"""FastAPI dependencies for shared application services.

Services are created once in the application lifespan and stored on
app.state; these dependencies hand them to route handlers.
"""

from typing import Callable

from fastapi import Request

from moodseed.core.config import Settings
from moodseed.services.credits.ledger import CreditLedger
from moodseed.services.execution.controller import ExecutionController
from moodseed.services.execution.streamer import ProgressStreamer
from moodseed.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at startup.

    Returns:
        Settings instance loaded from environment variables.
    """
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.executions.get_by_id(execution_id)
    """
    return request.app.state.uow_factory


def get_ledger(request: Request) -> CreditLedger:
    return request.app.state.ledger


def get_controller(request: Request) -> ExecutionController:
    return request.app.state.controller


def get_streamer(request: Request) -> ProgressStreamer:
    return request.app.state.streamer
