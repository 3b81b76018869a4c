"""
Structured logging tests: bound context reaches both formats.
"""
import json
import logging

from core.logging import (
    ContextFilter,
    ContextTextFormatter,
    JSONFormatter,
    current_log_context,
    log_context,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("calorie.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    ContextFilter().filter(record)
    return record


class TestLogContext:
    def test_nested_blocks_merge_and_unwind(self):
        with log_context(request_id="req-1"):
            with log_context(stripe_event_id="evt_1", user_id=None):
                assert current_log_context() == {"request_id": "req-1", "stripe_event_id": "evt_1"}
            assert current_log_context() == {"request_id": "req-1"}
        assert current_log_context() == {}

    def test_json_includes_context_and_extra_fields(self):
        with log_context(stripe_event_id="evt_9", user_id="u1"):
            record = _record(extra_fields={"result": "subscription_synced", "user_id": "u2"})
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello"
        assert data["stripe_event_id"] == "evt_9"
        assert data["result"] == "subscription_synced"
        # per-call fields win over bound context
        assert data["user_id"] == "u2"

    def test_text_appends_known_ids_only(self):
        formatter = ContextTextFormatter("%(levelname)s %(message)s")
        with log_context(actor="admin_token", user_id="u1", path="/v1/goal"):
            line = formatter.format(_record())
        assert line == "INFO hello [user_id=u1 actor=admin_token]"
        assert formatter.format(_record()) == "INFO hello"


class TestRequestId:
    def test_generated_when_absent(self, client):
        resp = client.get("/ping")
        assert len(resp.headers["X-Request-Id"]) == 16

    def test_caller_supplied_id_is_echoed(self, client):
        resp = client.get("/ping", headers={"X-Request-Id": "trace-abc"})
        assert resp.headers["X-Request-Id"] == "trace-abc"
