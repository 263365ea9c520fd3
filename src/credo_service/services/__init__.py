"""Service layer components."""

from credo_service.services.comments import CommentService
from credo_service.services.expiry_sweeper import ExpirySweeper
from credo_service.services.market_store import MarketStore
from credo_service.services.reputation import ReputationLedger
from credo_service.services.task_manager import TaskManager
from credo_service.services.token_validator import TokenValidator
from credo_service.services.users import UserManager

__all__ = [
    "CommentService",
    "ExpirySweeper",
    "MarketStore",
    "ReputationLedger",
    "TaskManager",
    "TokenValidator",
    "UserManager",
]
