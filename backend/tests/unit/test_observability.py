"""
Unit Tests for observability helpers
"""

from unittest.mock import patch

import pytest
import structlog
from structlog.testing import CapturingLogger, LogCapture

from scenegen.services.observability import log_state_transition


@pytest.fixture
def captured():
    capture = LogCapture()
    bound = structlog.wrap_logger(
        CapturingLogger(),
        processors=[capture],
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    with patch("scenegen.services.observability.logger", bound):
        yield capture


def test_state_transition_logs_trigger(captured):
    log_state_transition(
        generation_id="gen_1",
        from_statuses=["queued", "processing"],
        to_status="processing",
        event="poll_progress",
        applied=True,
    )

    entry = captured.entries[0]
    assert entry["event"] == "generation_transition"
    assert entry["trigger"] == "poll_progress"
    assert entry["to_status"] == "processing"


def test_skipped_transition_is_logged(captured):
    log_state_transition(
        generation_id="gen_1",
        from_statuses=["queued", "processing"],
        to_status="completed",
        event="webhook_completed",
        applied=False,
    )

    assert captured.entries[0]["event"] == "generation_transition_skipped"
