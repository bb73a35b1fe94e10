"""Base service class with execution tracking and error logging."""
from abc import ABC
from contextlib import contextmanager
from typing import Optional, Dict, Any
import time

from src.utils.logger import logger


class BaseService(ABC):
    """
    Base class for all services.
    Provides execution tracking (timing + outcome logging) for
    maintenance-style operations.

    Use the track_execution context manager around work whose duration
    and failures should show up in the logs.
    """

    def __init__(self):
        self.service_name = self.__class__.__name__
        self.last_run: Optional[Dict[str, Any]] = None

    @contextmanager
    def track_execution(
        self,
        method_name: str,
        triggered_by: str = "system",
        input_params: Optional[Dict[str, Any]] = None,
    ):
        """
        Context manager to track service method execution.

        Usage:
            with self.track_execution("dedupe", triggered_by="cli"):
                # Your service logic here
                return self.do_work()

        Args:
            method_name: Name of the method being executed
            triggered_by: How it was triggered ('system', 'api', 'cli', 'scheduler')
            input_params: Parameters passed to the method (logged)

        Yields:
            run: Dict the caller may fill with a result summary
        """
        run: Dict[str, Any] = {
            "service": self.service_name,
            "method": method_name,
            "triggered_by": triggered_by,
            "input_params": input_params or {},
            "result": None,
        }
        started = time.monotonic()

        try:
            logger.info(f"[{self.service_name}.{method_name}] Starting execution ({triggered_by})")

            yield run

            duration_ms = int((time.monotonic() - started) * 1000)
            run.update(success=True, duration_ms=duration_ms)
            logger.info(f"[{self.service_name}.{method_name}] Completed successfully ({duration_ms}ms)")

        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            run.update(
                success=False,
                duration_ms=duration_ms,
                error_type=type(e).__name__,
                error_message=str(e),
            )

            logger.error(
                f"[{self.service_name}.{method_name}] Failed after {duration_ms}ms: {e}", exc_info=True
            )

            # Re-raise the exception
            raise

        finally:
            self.last_run = run
