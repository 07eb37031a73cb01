# backend/plantchat/services/base.py
"""
Base class for plantchat services.

Gives every service a named logger and the measure_operation decorator,
which times async operations, warns about slow ones and feeds both the
in-process stats and Prometheus. Persistence goes through the async
ChatStore, so sessions are not handled at this layer.
"""

from dataclasses import asdict, dataclass
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar, cast

from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

SLOW_OPERATION_SECONDS = 1.0

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class OperationStats:
    count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_time: float = 0.0
    max_time: float = 0.0

    def add(self, elapsed: float, success: bool) -> None:
        self.count += 1
        self.total_time += elapsed
        self.max_time = max(self.max_time, elapsed)
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1


class BaseService:
    # service class name -> operation -> stats
    _stats: Dict[str, Dict[str, OperationStats]] = {}

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure an async service method.

        Usage:
            @BaseService.measure_operation("send_message")
            async def send_message(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            async def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                error_type: Optional[str] = None
                try:
                    return await func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    self._record(operation_name, time.perf_counter() - started, error_type)

            return cast(F, wrapper)

        return decorator

    def _record(self, operation_name: str, elapsed: float, error_type: Optional[str]) -> None:
        service_name = self.__class__.__name__
        stats = BaseService._stats.setdefault(service_name, {})
        stats.setdefault(operation_name, OperationStats()).add(elapsed, error_type is None)

        if elapsed > SLOW_OPERATION_SECONDS:
            self.logger.warning(f"Slow operation detected: {operation_name} took {elapsed:.2f}s")

        prometheus_metrics.record_service_operation(
            service=service_name,
            operation=operation_name,
            duration=elapsed,
            status="success" if error_type is None else "error",
            error_type=error_type,
        )

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation stats for this service class, with averages."""
        result: Dict[str, Dict[str, Any]] = {}
        for operation, stats in BaseService._stats.get(self.__class__.__name__, {}).items():
            result[operation] = {
                **asdict(stats),
                "avg_time": stats.total_time / stats.count if stats.count else 0.0,
                "success_rate": stats.success_count / stats.count if stats.count else 0.0,
            }
        return result
