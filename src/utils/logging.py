import functools
import logging
import os
import time
from typing import Any, Callable, TypeVar

import numpy as np
import pandas as pd

# Default to CRITICAL (effectively off) unless explicitly set for debug
LOG_LEVEL = os.getenv("APP_LOG_LEVEL", "CRITICAL").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.CRITICAL))

F = TypeVar("F", bound=Callable[..., Any])


def _do_summarize(value: Any) -> str:
    """Internal implementation used to shorten values for debug logs."""
    if isinstance(value, pd.DataFrame):
        return f"DataFrame(rows={len(value)}, cols={value.shape[1]})"
    if isinstance(value, (pd.Series, np.ndarray)):
        return f"{type(value).__name__}(len={len(value)})"
    if isinstance(value, np.random.Generator):
        return "Generator"
    if isinstance(value, (int, float, str, bool)) or value is None:
        return repr(value)
    return f"<{type(value).__name__}>"


def log_call(func: F) -> F:
    """Decorator that logs function entry, exit and runtime at DEBUG level."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        logger = logging.getLogger(func.__module__)
        log_debug = logger.isEnabledFor(logging.DEBUG)
        if log_debug:
            logger.debug("Entering %s", func.__qualname__)
            summarized_args = [_do_summarize(a) for a in args]
            summarized_kwargs = {
                k: _do_summarize(v) for k, v in kwargs.items()
            }
            logger.debug(
                "args=%s kwargs=%s", summarized_args, summarized_kwargs
            )
        start = time.time()
        result = func(*args, **kwargs)
        runtime_ms = (time.time() - start) * 1000.0
        if log_debug:
            logger.debug("return=%s", _do_summarize(result))
            logger.debug("Exiting %s (%.2fms)", func.__qualname__, runtime_ms)
        return result

    return wrapper  # type: ignore[return-value]


@log_call
def summarize(value: Any) -> str:
    """Short, shape-only description of a value for log messages."""
    return _do_summarize(value)
