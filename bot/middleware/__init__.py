"""Bot middleware package."""

from .access import AccessMiddleware
from .fsm_logger import FSMLoggingMiddleware
from .rate_limit import RateLimitMiddleware
from .update_guard import UpdateGuardMiddleware

__all__ = [
    "AccessMiddleware",
    "FSMLoggingMiddleware",
    "RateLimitMiddleware",
    "UpdateGuardMiddleware",
    "setup_middleware",
]


def setup_middleware(dispatcher, user_service, state_manager, update_timeout: float) -> None:
    """Install middleware in execution order.

    update guard → access (blacklist, user upsert) → rate limit → FSM logging
    """
    dispatcher.update.outer_middleware(UpdateGuardMiddleware(timeout=update_timeout))

    access = AccessMiddleware(user_service)
    limiter = RateLimitMiddleware(state_manager)
    for observer in (dispatcher.message, dispatcher.callback_query):
        observer.outer_middleware(access)
        observer.outer_middleware(limiter)
        observer.middleware(FSMLoggingMiddleware())
