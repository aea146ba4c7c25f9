"""
FastAPI Dependencies

Provides dependency injection for the provider Dispatcher. One Dispatcher is
built per process from Settings; tests swap it through
app.dependency_overrides.
"""

from functools import lru_cache

from src.core.config import settings
from src.core.logging import get_logger
from src.engines.providers.dispatcher import Dispatcher

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_dispatcher() -> Dispatcher:
    dispatcher = Dispatcher.from_settings(settings)
    logger.info(
        "dispatcher_ready",
        configured_providers=[p.value for p in dispatcher.available_providers()],
    )
    return dispatcher
