"""
Unit tests for the JSON log formatter.
"""
import json
import logging

import pytest

from salonbook.lib.logging import JSONFormatter, get_correlation_id, set_correlation_id


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("salonbook.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
def test_extra_fields_are_top_level_keys():
    output = json.loads(JSONFormatter().format(_record("Booking created", booking_id="b-1", amount="250.00")))

    assert output["message"] == "Booking created"
    assert output["level"] == "INFO"
    assert output["booking_id"] == "b-1"
    assert output["amount"] == "250.00"
    assert "args" not in output
    assert "levelno" not in output


@pytest.mark.unit
def test_correlation_id_included_when_set():
    set_correlation_id("req-123")
    try:
        assert get_correlation_id() == "req-123"
        output = json.loads(JSONFormatter().format(_record("Payment event applied")))
    finally:
        set_correlation_id(None)

    assert output["correlation_id"] == "req-123"
    assert get_correlation_id() is None


@pytest.mark.unit
def test_correlation_id_omitted_outside_request():
    output = json.loads(JSONFormatter().format(_record("Payout run finished")))

    assert "correlation_id" not in output
