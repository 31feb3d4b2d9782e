"""
Unit tests for slack_bridge/core/types.py
"""
from slack_bridge.core.types import Failure, Success


class TestSuccess:
    def test_to_dict_merges_fields(self):
        result = Success({"ts": "1.0", "channel": "C01"})

        assert result.ok is True
        assert result.to_dict() == {"ok": True, "ts": "1.0", "channel": "C01"}

    def test_empty_success(self):
        assert Success().to_dict() == {"ok": True}


class TestFailure:
    def test_to_dict_keeps_error_and_detail(self):
        result = Failure(error="channel_not_found", detail="An API error occurred: channel_not_found")

        assert result.ok is False
        assert result.to_dict() == {
            "ok": False,
            "error": "channel_not_found",
            "detail": "An API error occurred: channel_not_found",
        }

    def test_detail_omitted_when_absent(self):
        assert Failure(error="slack_error").to_dict() == {"ok": False, "error": "slack_error"}
