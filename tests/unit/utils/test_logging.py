"""Tests for the structured log formatter."""

import json
import logging
import sys
from uuid import uuid4

from waypoint.utils.logging import StructuredFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="waypoint.core.services.decision_broker",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Decision request %s",
        args=("resolved",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_context_fields(self):
        plan_id = uuid4()
        entry = json.loads(StructuredFormatter().format(_record(plan_id=plan_id, user_id=None)))

        assert entry["message"] == "Decision request resolved"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "waypoint.core.services.decision_broker"
        assert entry["plan_id"] == str(plan_id)
        assert "user_id" not in entry

    def test_exception_info(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredFormatter().format(record))
        assert entry["error"] == "boom"
        assert entry["error_type"] == "ValueError"
