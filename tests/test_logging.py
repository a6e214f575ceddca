"""
Tests for the logging module.
"""

import pytest

from deal_desk.logging import (
    OperationTimer,
    add_context_info,
    get_actor_id,
    get_org_id,
    get_quote_id,
    get_trace_id,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        """Test that logging context sets values correctly."""
        with logging_context(
            trace_id="trace_123",
            org_id="org_abc",
            actor_id="user_xyz",
        ):
            assert get_trace_id() == "trace_123"
            assert get_org_id() == "org_abc"
            assert get_actor_id() == "user_xyz"

    def test_logging_context_restores_values(self):
        """Test that context is restored after exiting."""
        with logging_context(trace_id="outer"):
            assert get_trace_id() == "outer"

            with logging_context(trace_id="inner"):
                assert get_trace_id() == "inner"

            assert get_trace_id() == "outer"

        assert get_trace_id() is None

    def test_logging_context_partial_values(self):
        """Test that partial context values work."""
        with logging_context(org_id="org_only"):
            assert get_org_id() == "org_only"
            assert get_trace_id() is None
            assert get_actor_id() is None

    def test_context_processor_adds_values(self):
        """The structlog processor copies context vars into the event dict."""
        with logging_context(org_id="org_1", actor_id="user_1"):
            event = add_context_info(None, 'info', {'event': 'quote_service.quote_created'})

        assert event['org_id'] == "org_1"
        assert event['actor_id'] == "user_1"
        assert 'trace_id' not in event

    def test_inner_context_keeps_outer_org(self):
        with logging_context(org_id="org_1", actor_id="user_1"):
            with logging_context(quote_id="q_1"):
                assert get_org_id() == "org_1"
                assert get_quote_id() == "q_1"
            assert get_quote_id() is None

    def test_explicit_event_key_wins(self):
        with logging_context(quote_id="q_bound"):
            event = add_context_info(None, 'info', {'event': 'workflow.step_decided', 'quote_id': 'q_explicit'})

        assert event['quote_id'] == 'q_explicit'


class TestOperationTimer:
    """Test operation timing functionality."""

    def test_timer_records_stages(self):
        """Test that timer records stage durations."""
        timer = OperationTimer()

        with timer.stage("resolve"):
            pass

        with timer.stage("persist"):
            pass

        assert timer.stages["resolve"] >= 0
        assert timer.stages["persist"] >= 0

    def test_timer_manual_record(self):
        timer = OperationTimer()
        timer.record("contract", 150.5)

        assert timer.stages["contract"] == 150.5

    def test_timer_total_ms(self):
        timer = OperationTimer()
        assert timer.total_ms >= 0

    def test_timer_summary(self):
        """Test summary dictionary format."""
        timer = OperationTimer()
        timer.record("price", 100.0)
        timer.record("persist", 50.0)

        summary = timer.summary()

        assert "total_ms" in summary
        assert summary["stages"]["price"] == 100.0
        assert summary["stages"]["persist"] == 50.0

    def test_failed_stage_recorded(self):
        timer = OperationTimer()

        with pytest.raises(ValueError):
            with timer.stage("validate"):
                raise ValueError("seats must be positive")

        assert timer.failed_stage == "validate"
        assert timer.stages["validate"] >= 0
        assert timer.summary()["failed_stage"] == "validate"

    def test_summary_omits_failed_stage_on_success(self):
        timer = OperationTimer()

        with timer.stage("price"):
            pass

        assert "failed_stage" not in timer.summary()
