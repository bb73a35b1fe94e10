"""Tests for the check-health CLI command."""

from unittest.mock import Mock, patch

import httpx
import pytest
from click.testing import CliRunner

from cli.commands.health import check_health


def health_response(status="healthy", pipeline_healthy=True):
    response = Mock()
    response.json.return_value = {
        "status": status,
        "checks": {
            "pipeline": {"healthy": pipeline_healthy, "message": "Pipeline state"},
            "archive": {"healthy": True, "message": "3 media items archived"},
        },
        "timestamp": "2024-01-01T00:00:00+00:00",
    }
    return response


@pytest.mark.unit
class TestCheckHealthCommand:
    """Tests for the check-health CLI command."""

    @patch("cli.commands.health.httpx.get")
    def test_healthy_server(self, mock_get):
        mock_get.return_value = health_response()

        result = CliRunner().invoke(check_health, ["--url", "http://observatory.test/"])

        assert result.exit_code == 0
        assert "HEALTHY" in result.output
        assert "Archive" in result.output
        mock_get.assert_called_once_with("http://observatory.test/health", timeout=5.0)

    @patch("cli.commands.health.httpx.get")
    def test_unhealthy_server_exits_nonzero(self, mock_get):
        mock_get.return_value = health_response(status="unhealthy", pipeline_healthy=False)

        result = CliRunner().invoke(check_health)

        assert result.exit_code == 1
        assert "UNHEALTHY" in result.output

    @patch("cli.commands.health.httpx.get")
    def test_unreachable_server(self, mock_get):
        mock_get.side_effect = httpx.ConnectError("connection refused")

        result = CliRunner().invoke(check_health, ["--timeout", "1"])

        assert result.exit_code == 1
        assert "Could not reach server" in result.output
