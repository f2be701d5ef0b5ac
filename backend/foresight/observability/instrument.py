from __future__ import annotations

import functools
import inspect
import time
from typing import Any, Callable, TypeVar

import structlog

from foresight.errors import ForesightError

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger("job")


def _result_size(res: Any) -> int | None:
    if isinstance(res, (list, tuple, set, dict)):
        return len(res)
    return None


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def log_job(name: str) -> Callable[[F], F]:
    """Decorator to measure job duration and emit structured logs.

    Domain rejections (``ForesightError``) are logged as ``job.rejected``
    without a traceback; anything else is ``job.error``.
    """

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any):
                start = time.perf_counter()
                logger.info("job.start", job=name)
                try:
                    result = await func(*args, **kwargs)
                except ForesightError as exc:
                    logger.warning("job.rejected", job=name, code=exc.code, duration_ms=_elapsed_ms(start))
                    raise
                except Exception:
                    logger.exception("job.error", job=name, duration_ms=_elapsed_ms(start))
                    raise
                logger.info(
                    "job.completed",
                    job=name,
                    duration_ms=_elapsed_ms(start),
                    result_size=_result_size(result),
                )
                return result

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any):
            start = time.perf_counter()
            logger.info("job.start", job=name)
            try:
                result = func(*args, **kwargs)
            except ForesightError as exc:
                logger.warning("job.rejected", job=name, code=exc.code, duration_ms=_elapsed_ms(start))
                raise
            except Exception:
                logger.exception("job.error", job=name, duration_ms=_elapsed_ms(start))
                raise
            logger.info(
                "job.completed",
                job=name,
                duration_ms=_elapsed_ms(start),
                result_size=_result_size(result),
            )
            return result

        return sync_wrapper  # type: ignore[return-value]

    return decorator
