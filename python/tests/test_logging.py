"""Tests for logging context propagation.

Covers:
- Request and task ContextVars injected into every log event
- Explicit keyword arguments win over context values
- Clearing request and task context
"""

import pytest

from pagegen.logging import (
    add_request_context,
    clear_request_context,
    clear_task_context,
    configure_task_logging,
    get_request_id,
    set_request_context,
)


@pytest.fixture(autouse=True)
def _clean_context():
    yield
    clear_request_context()
    clear_task_context()


class TestRequestContext:
    def test_injects_request_fields(self):
        set_request_context("req-1", path="/queue", method="POST")

        event = add_request_context(None, "info", {"event": "queue.enqueued"})

        assert event == {
            "event": "queue.enqueued",
            "request_id": "req-1",
            "path": "/queue",
            "method": "POST",
        }

    def test_explicit_values_win(self):
        set_request_context("req-1")

        event = add_request_context(None, "info", {"event": "x", "request_id": "override"})

        assert event["request_id"] == "override"

    def test_clear(self):
        set_request_context("req-1", path="/queue")
        clear_request_context()

        assert get_request_id() is None
        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestTaskContext:
    def test_task_fields(self):
        configure_task_logging(
            request_id="req-9", task_name="process_queued_page", task_id="t-1", page_id=42
        )

        event = add_request_context(None, "info", {"event": "generation.job.started"})

        assert event["request_id"] == "req-9"
        assert event["task_name"] == "process_queued_page"
        assert event["task_id"] == "t-1"
        assert event["page_id"] == 42

    def test_clear_task_context(self):
        configure_task_logging(task_name="cleanup_generation_history", page_id=1)
        clear_task_context()

        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}
