"""Log formatter and request-context stamping tests."""

import json
import logging

from flask import g

from servicedesk.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
)


def _record(msg="Webhook created service request %s", args=("WEB-1",), **extra):
    record = logging.LogRecord("servicedesk.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:
    def test_stamps_request_and_member(self, app, agent):
        record = _record()
        with app.test_request_context("/api/complaints"):
            g.request_id = "abc123"
            g.current_member = agent
            assert RequestContextFilter().filter(record)
        assert record.request_id == "abc123"
        assert record.member_id == agent.id

    def test_outside_request(self):
        record = _record()
        RequestContextFilter().filter(record)
        assert record.request_id is None
        assert record.member_id is None


class TestFormatters:
    def test_json_line(self):
        record = _record(request_id="abc123", member_id=7, method="POST",
                         path="/api/webhooks/orders", status=201, duration_ms=12.345)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Webhook created service request WEB-1"
        assert entry["level"] == "INFO"
        assert entry["request_id"] == "abc123"
        assert entry["member_id"] == 7
        assert entry["status"] == 201
        assert entry["duration_ms"] == 12.3
        assert "remote_addr" not in entry

    def test_readable_line_names_member(self):
        line = ReadableFormatter().format(_record(member_id=7))
        assert "servicedesk.test: Webhook created service request WEB-1" in line
        assert line.endswith("(member 7)")
