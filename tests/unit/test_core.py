"""
Unit tests -- shared utilities and log formatting.
"""
import logging
import time

from src.core.logging import format_fields, get_logger, log_event
from src.core.utils import get_nested_value, timer, to_json


def test_timer_records_elapsed():
    with timer() as t:
        time.sleep(0.01)
    assert t["elapsed_ms"] >= 10


def test_to_json_is_compact_and_total():
    assert to_json({"a": [1, 2]}) == '{"a":[1,2]}'
    assert to_json({"x": object}).startswith('{"x":"<class')


def test_get_nested_value():
    row = {"_id": {"month": 3}, "a.b": 1}
    assert get_nested_value(row, "_id.month") == 3
    assert get_nested_value(row, "a.b") == 1
    assert get_nested_value(row, "_id.missing") is None
    assert get_nested_value(row, None) is None


def test_format_fields_truncates_long_values():
    line = format_fields(collection="orders", pipeline="x" * 500)
    collection, pipeline = line.split(" | ")
    assert collection == "collection=orders"
    assert len(pipeline) == len("pipeline=") + 200
    assert pipeline.endswith("...")


def test_log_event_line(capsys):
    logger = get_logger("tests.log_event")
    logger.setLevel(logging.INFO)
    log_event(logger, "Pipeline done", collection="orders", rows=3)
    out = capsys.readouterr().out
    assert "Pipeline done | collection=orders | rows=3" in out


def test_log_event_respects_level(capsys):
    logger = get_logger("tests.log_event.quiet")
    logger.setLevel(logging.WARNING)
    log_event(logger, "hidden", rows=1)
    assert "hidden" not in capsys.readouterr().out
