"""Health check service - pipeline and archive health reporting."""

from datetime import datetime, timezone

from src.services.base_service import BaseService
from src.services.core.feed_pipeline import FeedPipeline, PipelineState
from src.services.core.time_machine import MediaTimeMachine
from src.utils.logger import logger


class HealthCheckService(BaseService):
    """System health monitoring for the /health endpoint and the CLI."""

    def __init__(self, pipeline: FeedPipeline, store: MediaTimeMachine):
        super().__init__()
        self.pipeline = pipeline
        self.store = store

    def check_all(self) -> dict:
        """
        Run all health checks.

        Returns:
            Dict with overall status and individual check results
        """
        checks = {
            "pipeline": self._check_pipeline(),
            "stream_activity": self._check_stream_activity(),
            "archive": self._check_archive(),
        }

        all_healthy = all(check["healthy"] for check in checks.values())
        overall_status = "healthy" if all_healthy else "unhealthy"

        return {
            "status": overall_status,
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _check_pipeline(self) -> dict:
        """Check the ingestion pipeline state."""
        state = self.pipeline.state

        if state is PipelineState.ACTIVE:
            return {"healthy": True, "message": "Live subscription active", "state": state.value}

        if state is PipelineState.FAILED:
            logger.error("[HealthCheckService] Pipeline is in FAILED state")
            return {
                "healthy": False,
                "message": f"Initialization failed after {self.pipeline.retries} attempts",
                "state": state.value,
            }

        # Still starting up or reconnecting
        return {
            "healthy": True,
            "message": f"Pipeline {state.value}",
            "state": state.value,
            "retries": self.pipeline.retries,
        }

    def _check_stream_activity(self) -> dict:
        """Check time since the last relay event."""
        idle_seconds = self.pipeline.seconds_since_activity()
        threshold = self.pipeline.stale_threshold

        if self.pipeline.state is PipelineState.ACTIVE and idle_seconds > threshold:
            return {
                "healthy": False,
                "message": f"No events for {idle_seconds:.0f}s (threshold: {threshold:.0f}s)",
                "seconds_since_activity": round(idle_seconds, 1),
            }

        return {
            "healthy": True,
            "message": f"Last event {idle_seconds:.0f}s ago",
            "seconds_since_activity": round(idle_seconds, 1),
        }

    def _check_archive(self) -> dict:
        """Report archive size; an empty archive is healthy."""
        counts = {media_type.value: count for media_type, count in self.store.stats().items()}
        total = self.store.total_count
        return {
            "healthy": True,
            "message": f"{total} media items archived",
            "counts": counts,
        }
