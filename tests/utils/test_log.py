import json
import logging
from types import SimpleNamespace as NS

from notecharts.utils.log import JsonFormatter, configure_from_cfg, get_logger


class CapHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=0)
        self.last = None
        self._formatter = JsonFormatter()

    def emit(self, record: logging.LogRecord) -> None:
        self.last = self._formatter.format(record)


def test_json_formatter_basic_and_extra():
    logger = logging.getLogger("t-json")
    cap = CapHandler()
    logger.handlers = [cap]
    logger.setLevel(logging.INFO)

    logger.info("gate fired", extra={"rule": "pie_cardinality", "to_type": "bar"})
    payload = json.loads(cap.last)
    assert payload["message"] == "gate fired"
    assert payload["level"] == "INFO"
    assert payload["rule"] == "pie_cardinality"
    assert payload["to_type"] == "bar"
    assert "time" in payload

def test_json_formatter_keeps_cjk_and_reprs_unserializable():
    logger = logging.getLogger("t-json-cjk")
    cap = CapHandler()
    logger.handlers = [cap]
    logger.setLevel(logging.INFO)

    logger.info("字段", extra={"field": "主题", "obj": object()})
    assert "主题" in cap.last
    payload = json.loads(cap.last)
    assert payload["obj"].startswith("<object")

def test_get_logger_idempotent_and_plain_mode():
    lg1 = get_logger("nc-test", level="DEBUG", structured_json=True)
    lg2 = get_logger("nc-test", level="INFO", structured_json=True)
    assert lg1 is lg2
    lg3 = get_logger("nc-plain", level="INFO", structured_json=False)
    assert isinstance(lg3.handlers[0].formatter, logging.Formatter)
    assert not isinstance(lg3.handlers[0].formatter, JsonFormatter)

def test_configure_from_cfg_uses_logging_section():
    root = logging.getLogger("notecharts")
    saved = (list(root.handlers), root.propagate, root.level)
    root.handlers = []
    try:
        lg = configure_from_cfg(NS(logging=NS(level="WARNING", structured_json=True)))
        assert lg is root
        assert lg.level == logging.WARNING
        assert isinstance(lg.handlers[0].formatter, JsonFormatter)
    finally:
        root.handlers, root.propagate = saved[0], saved[1]
        root.setLevel(saved[2])
