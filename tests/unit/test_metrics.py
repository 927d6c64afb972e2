"""Unit tests for job metrics and Pushgateway export."""

from unittest.mock import patch

import pytest

from namespace_manager.observability.metrics import (
    get_metrics_registry,
    push_metrics,
    record_failure,
    track_job,
)
from namespace_manager.settings import Settings


def _sample(name: str, **labels) -> float:
    return get_metrics_registry().get_sample_value(name, labels) or 0.0


class TestTrackJob:
    """Test job timing."""

    @pytest.mark.asyncio
    async def test_success(self):
        before = _sample(
            "namespace_manager_job_duration_seconds_count",
            job="rotate",
            result="success",
        )

        async with track_job("rotate"):
            pass

        after = _sample(
            "namespace_manager_job_duration_seconds_count",
            job="rotate",
            result="success",
        )
        assert after == before + 1
        assert _sample(
            "namespace_manager_job_last_success_timestamp_seconds", job="rotate"
        )

    @pytest.mark.asyncio
    async def test_partial(self):
        before = _sample(
            "namespace_manager_job_duration_seconds_count",
            job="expire",
            result="partial",
        )

        async with track_job("expire") as tracker:
            tracker["failed"] = True

        assert (
            _sample(
                "namespace_manager_job_duration_seconds_count",
                job="expire",
                result="partial",
            )
            == before + 1
        )

    @pytest.mark.asyncio
    async def test_error_propagates(self):
        before = _sample(
            "namespace_manager_job_duration_seconds_count",
            job="monitor",
            result="error",
        )

        with pytest.raises(RuntimeError):
            async with track_job("monitor"):
                raise RuntimeError("store down")

        assert (
            _sample(
                "namespace_manager_job_duration_seconds_count",
                job="monitor",
                result="error",
            )
            == before + 1
        )


def test_record_failure_counts_by_type():
    labels = {"operation": "rotate", "error_type": "KeyError"}
    before = _sample("namespace_manager_operation_errors_total", **labels)

    record_failure("rotate", KeyError("x"))

    assert _sample("namespace_manager_operation_errors_total", **labels) == before + 1


class TestPushMetrics:
    """Test Pushgateway export."""

    def test_no_gateway_configured(self):
        with patch("namespace_manager.observability.metrics.push_to_gateway") as push:
            assert not push_metrics(Settings(PUSHGATEWAY_URL=""), "rotate")
        push.assert_not_called()

    def test_pushes_registry(self):
        with patch("namespace_manager.observability.metrics.push_to_gateway") as push:
            assert push_metrics(Settings(PUSHGATEWAY_URL="pgw:9091"), "monitor")

        push.assert_called_once_with(
            "pgw:9091",
            job="namespace-manager-monitor",
            registry=get_metrics_registry(),
        )

    def test_push_failure_is_logged(self, caplog):
        with patch(
            "namespace_manager.observability.metrics.push_to_gateway",
            side_effect=OSError("connection refused"),
        ):
            assert not push_metrics(Settings(PUSHGATEWAY_URL="pgw:9091"), "expire")

        assert "Failed to push metrics" in caplog.text
