"""
Fire-and-forget side effects.

Visit tracking and outbound email never fail the request that triggered them.
They are queued as FastAPI background tasks (run after the response is sent)
and wrapped so any exception is logged instead of raised.
"""
import functools
import logging
from typing import Callable

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


def best_effort(func: Callable) -> Callable:
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception:
            logger.exception("Side effect %s failed", func.__name__)
            return None

    return wrapper


def dispatch(background_tasks: BackgroundTasks, func: Callable, *args, **kwargs) -> None:
    background_tasks.add_task(best_effort(func), *args, **kwargs)
