import json
import logging
import sys

from tracker.logging_config import JsonFormatter, setup_logging


def _record(**extra):
    record = logging.makeLogRecord({"name": "tracker.test", "levelname": "INFO", "levelno": logging.INFO, "msg": "hello %s", "args": ("world",)})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_renders_one_object():
    payload = json.loads(JsonFormatter().format(_record(user_id="u1")))

    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "tracker.test"
    assert payload["user_id"] == "u1"
    assert "msg" not in payload and "args" not in payload


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exc_info"]


def test_setup_logging_replaces_handlers(tmp_path):
    log_file = tmp_path / "tracker.log"
    root = logging.getLogger()
    previous = list(root.handlers), root.level
    try:
        setup_logging(level="debug", fmt="text", file=str(log_file))
        setup_logging(level="debug", fmt="json", file=str(log_file))

        assert len(root.handlers) == 2
        assert all(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
        assert root.level == logging.DEBUG

        logging.getLogger("tracker.test").info("written")
        for handler in root.handlers:
            handler.flush()
        assert json.loads(log_file.read_text().splitlines()[-1])["message"] == "written"
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous[0]:
            root.addHandler(handler)
        root.setLevel(previous[1])
