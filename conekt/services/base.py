# conekt/services/base.py
"""
Shared plumbing for the messaging services.

Services own the unit of work (``transaction``), refuse calls without an
authenticated principal, and time their public operations with
``measure_operation``. Timings are kept per service class in process memory
and anything over ``settings.slow_operation_threshold`` is logged.
"""

import asyncio
from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException, UnauthorizedException
from ..principal import UserPrincipal

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """Base class for services backed by one SQLAlchemy session."""

    # {service class: {operation: counters}}
    _class_metrics: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on success, roll back on any error.

        SQLAlchemy errors are re-raised as ServiceException; anything else
        (domain errors, RepositoryException) propagates unchanged.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction rolled back: {e}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def require_principal(principal: Optional[UserPrincipal]) -> UserPrincipal:
        """The principal, or Unauthorized when the caller has no identity."""
        if principal is None or not principal.user_id:
            raise UnauthorizedException()
        return principal

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time a service method, sync or async.

        Usage:
            @BaseService.measure_operation("send_message")
            async def send_message(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            if not asyncio.iscoroutinefunction(func):

                @wraps(func)
                def wrapper(self, *args, **kwargs):
                    started = time.perf_counter()
                    success = False
                    try:
                        result = func(self, *args, **kwargs)
                        success = True
                        return result
                    finally:
                        self._finish_measure(
                            operation_name, time.perf_counter() - started, success
                        )

                return cast(F, wrapper)

            @wraps(func)
            async def async_wrapper(self, *args, **kwargs):
                started = time.perf_counter()
                success = False
                try:
                    result = await func(self, *args, **kwargs)
                    success = True
                    return result
                finally:
                    self._finish_measure(operation_name, time.perf_counter() - started, success)

            return cast(F, async_wrapper)

        return decorator

    def _finish_measure(self, operation: str, elapsed: float, success: bool) -> None:
        counters = BaseService._class_metrics.setdefault(self.__class__.__name__, {})
        data = counters.setdefault(
            operation,
            {"count": 0, "total_time": 0.0, "failures": 0, "max_time": 0.0},
        )
        data["count"] += 1
        data["total_time"] += elapsed
        data["max_time"] = max(data["max_time"], elapsed)
        if not success:
            data["failures"] += 1

        if elapsed > settings.slow_operation_threshold:
            self.logger.warning(f"Slow operation detected: {operation} took {elapsed:.2f}s")

    def get_metrics(self) -> Dict[str, Any]:
        """Per-operation count, average and max time, and success rate."""
        counters = BaseService._class_metrics.get(self.__class__.__name__, {})
        return {
            operation: {
                "count": data["count"],
                "avg_time": data["total_time"] / data["count"],
                "max_time": data["max_time"],
                "success_rate": (data["count"] - data["failures"]) / data["count"],
                "failure_count": data["failures"],
            }
            for operation, data in counters.items()
            if data["count"]
        }

    def reset_metrics(self) -> None:
        BaseService._class_metrics.pop(self.__class__.__name__, None)
