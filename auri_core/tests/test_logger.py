import json
import logging
import sys

from auri_core.infrastructure.logging.logger import JsonLinesFormatter


def _record(msg, extra=None, exc_info=None):
    record = logging.LogRecord("auri_core", logging.WARNING, __file__, 1, msg, None, exc_info)
    if extra is not None:
        record.extra = extra
    return record


def test_formatter_emits_json_line_with_extra():
    line = JsonLinesFormatter().format(_record("sse.decode_warning", {"reason": "invalid_json", "line": "{oops"}))
    data = json.loads(line)
    assert data["level"] == "WARNING"
    assert data["msg"] == "sse.decode_warning"
    assert data["reason"] == "invalid_json"
    assert data["line"] == "{oops"
    assert data["ts"].endswith("Z")


def test_formatter_redacts_content_fields():
    line = JsonLinesFormatter(redact=True).format(
        _record("Exchange settled", {"session_id": "s1", "content": "Jag kan inte sova", "reply": "..."})
    )
    data = json.loads(line)
    assert data["session_id"] == "s1"
    assert "content" not in data and "reply" not in data


def test_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record("Exchange failed unexpectedly", exc_info=sys.exc_info())
    data = json.loads(JsonLinesFormatter().format(record))
    assert "RuntimeError: boom" in data["exc"]
