"""Unit tests for metrics registry."""

from __future__ import annotations

from unittest.mock import patch

from bell_sync import metrics
from bell_sync.structs import ConnectionState


def _sample_value(metric, labels: dict[str, str]) -> float | None:
    for sample in metric.collect()[0].samples:
        if sample.labels == labels and not sample.name.endswith("_created"):
            return sample.value
    return None


class TestCommandMetrics:
    """Tests for command and status counters."""

    def test_record_command(self) -> None:
        before = _sample_value(metrics.bell_sync_commands_total, {"command": "ADD", "outcome": "sent"}) or 0.0

        metrics.record_command("ADD", "sent")

        after = _sample_value(metrics.bell_sync_commands_total, {"command": "ADD", "outcome": "sent"})
        assert after == before + 1

    def test_record_status(self) -> None:
        metrics.record_status("list_entry")
        samples = list(metrics.bell_sync_status_total.collect()[0].samples)
        assert any(s.labels == {"kind": "list_entry"} for s in samples)

    def test_record_decode_error(self) -> None:
        metrics.record_decode_error("bad_number")
        samples = list(metrics.bell_sync_decode_errors_total.collect()[0].samples)
        assert any(s.labels == {"reason": "bad_number"} for s in samples)

    def test_record_reconnect(self) -> None:
        before = _sample_value(metrics.bell_sync_reconnect_total, {}) or 0.0

        metrics.record_reconnect()

        assert _sample_value(metrics.bell_sync_reconnect_total, {}) == before + 1


class TestStateGauges:
    """Tests for connection and store gauges."""

    def test_record_connection_state_is_one_hot(self) -> None:
        metrics.record_connection_state(ConnectionState.RECONNECTING)

        for state in ConnectionState:
            expected = 1.0 if state is ConnectionState.RECONNECTING else 0.0
            assert _sample_value(metrics.bell_sync_connection_state, {"state": state.value}) == expected

    def test_record_schedule_entries(self) -> None:
        metrics.record_schedule_entries(7)

        assert _sample_value(metrics.bell_sync_schedule_entries, {}) == 7.0


class TestMetricsServer:
    """Tests for start_metrics_server."""

    def test_starts_only_once(self) -> None:
        with (
            patch.dict(metrics._server_state, {"started": False}),
            patch("bell_sync.metrics.start_http_server") as mock_start,
        ):
            assert metrics.start_metrics_server(9109) is True
            assert metrics.start_metrics_server(9109) is False

        mock_start.assert_called_once_with(9109)
