"""Application lifecycle management."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from credo_service.clients.identity_client import IdentityClient
from credo_service.config import get_settings
from credo_service.core.state import init_app_state
from credo_service.logging import get_logger, setup_logging
from credo_service.services.comments import CommentService
from credo_service.services.expiry_sweeper import ExpirySweeper
from credo_service.services.market_store import MarketStore
from credo_service.services.reputation import ReputationLedger
from credo_service.services.task_manager import TaskManager
from credo_service.services.token_validator import TokenValidator
from credo_service.services.users import UserManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    store = MarketStore(db_path=settings.database.path)
    state.store = store

    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        verify_jws_path=settings.identity.verify_jws_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client
    state.token_validator = TokenValidator(identity_client=identity_client)

    ledger = ReputationLedger(store=store, initial_rating=settings.reputation.initial_rating)
    comment_service = CommentService(
        store=store,
        max_comment_length=settings.comments.max_comment_length,
    )
    state.comment_service = comment_service
    state.task_manager = TaskManager(
        store=store,
        ledger=ledger,
        comments=comment_service,
        limits=settings.tasks,
        max_rating_comment_length=settings.reputation.max_rating_comment_length,
    )
    state.user_manager = UserManager(
        store=store,
        initial_rating=settings.reputation.initial_rating,
        leaderboard_size=settings.reputation.leaderboard_size,
    )

    sweep_interval = settings.tasks.expiry_sweep_interval_seconds
    sweeper = ExpirySweeper(store=store, interval_seconds=sweep_interval)
    state.expiry_sweeper = sweeper
    if sweep_interval > 0:
        state.sweeper_task = asyncio.create_task(sweeper.run())

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "identity_base_url": settings.identity.base_url,
            "expiry_sweep_interval_seconds": sweep_interval,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    sweeper.stop()
    if state.sweeper_task is not None:
        state.sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await state.sweeper_task

    await identity_client.close()
    store.close()
