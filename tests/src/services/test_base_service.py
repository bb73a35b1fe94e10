"""Tests for BaseService execution tracking."""

import pytest

from src.services.base_service import BaseService


class ExampleService(BaseService):
    def work(self, fail=False):
        with self.track_execution("work", triggered_by="cli", input_params={"fail": fail}) as run:
            if fail:
                raise RuntimeError("broken")
            run["result"] = {"done": 1}
            return "ok"


@pytest.mark.unit
class TestBaseService:
    """Tests for track_execution."""

    def test_service_name(self):
        assert ExampleService().service_name == "ExampleService"
        assert ExampleService().last_run is None

    def test_successful_run_is_recorded(self):
        service = ExampleService()

        assert service.work() == "ok"

        run = service.last_run
        assert run["success"] is True
        assert run["method"] == "work"
        assert run["triggered_by"] == "cli"
        assert run["input_params"] == {"fail": False}
        assert run["result"] == {"done": 1}
        assert run["duration_ms"] >= 0

    def test_failed_run_reraises_and_records_error(self):
        service = ExampleService()

        with pytest.raises(RuntimeError, match="broken"):
            service.work(fail=True)

        run = service.last_run
        assert run["success"] is False
        assert run["error_type"] == "RuntimeError"
        assert run["error_message"] == "broken"
