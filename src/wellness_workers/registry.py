import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .store import RecordStore

logger = logging.getLogger(__name__)

# Handler signature: async def handler(store: RecordStore, payload: dict) -> None
HandlerFn = Callable[[RecordStore, dict[str, Any]], Awaitable[None]]

# Job-level registry: one handler per job_type
_registry: dict[str, HandlerFn] = {}


def register(job_type: str) -> Callable[[HandlerFn], HandlerFn]:
    """Register a recompute handler for a job_type (e.g. 'summary.daily')."""

    def decorator(fn: HandlerFn) -> HandlerFn:
        if job_type in _registry:
            raise ValueError(f"Duplicate handler for job_type={job_type!r}")
        _registry[job_type] = fn
        logger.info("Registered handler for job_type=%s", job_type)
        return fn

    return decorator


def get_handler(job_type: str) -> HandlerFn | None:
    return _registry.get(job_type)


def registered_types() -> list[str]:
    return list(_registry.keys())
