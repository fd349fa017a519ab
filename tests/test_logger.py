"""Tests for the structured messaging logger."""
import json
import logging

from volunteerhub.utils.logger import StructuredLogger


class TestStructuredLogger:
    def test_records_are_json_with_context(self, caplog):
        log = StructuredLogger("volunteerhub.messaging.test")

        with caplog.at_level(logging.WARNING, logger="volunteerhub.messaging.test"):
            log.warning("Read receipt failed", user_id="user-alice", message_ids=[3, 4])

        record = json.loads(caplog.records[-1].getMessage())
        assert record["event"] == "Read receipt failed"
        assert record["level"] == "WARNING"
        assert record["user_id"] == "user-alice"
        assert record["message_ids"] == [3, 4]

    def test_levels_below_threshold_are_skipped(self, caplog):
        log = StructuredLogger("volunteerhub.messaging.quiet", level=logging.ERROR)

        log.warning("ignored")
        log.error("Send failed", code="WRITE_FAILED")

        messages = [
            json.loads(r.getMessage()) for r in caplog.records if r.name == "volunteerhub.messaging.quiet"
        ]
        assert [m["event"] for m in messages] == ["Send failed"]
