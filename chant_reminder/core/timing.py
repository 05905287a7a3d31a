"""
Performance timing utilities for debugging.

This module provides a decorator for measuring execution time of index
builds and transcriptions when the CR_DEBUG environment variable is set.
"""

import functools
import logging
import os
import time
from typing import Callable, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)

# Check if debug mode is enabled
DEBUG_ENABLED = os.getenv("CR_DEBUG") == "1"


def timer(func: Callable[P, R]) -> Callable[P, R]:
    """
    Decorator that measures and logs execution time when CR_DEBUG=1.

    Args:
        func: Function to measure

    Returns:
        Wrapped function that logs timing if debug is enabled
    """
    if not DEBUG_ENABLED:
        return func

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug("[CR_DEBUG] %s: %.2fms", func.__name__, elapsed_ms)
        return result

    return wrapper
