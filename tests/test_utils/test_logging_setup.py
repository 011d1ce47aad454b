"""로깅 설정 테스트."""

from __future__ import annotations

import json
import logging

from flowgate.utils.config import Config
from flowgate.utils.logging_setup import JSONFormatter, setup_logging


class TestSetupLogging:
    def teardown_method(self):
        root = logging.getLogger("flowgate")
        root.setLevel(logging.NOTSET)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    def test_console_only_by_default(self):
        root = setup_logging(Config.from_dict({"logging": {"level": "WARNING"}}))
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_file_handler_when_directory_set(self, config, tmp_path):
        root = setup_logging(config)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        logging.getLogger("flowgate.test").info("hello file")
        for handler in root.handlers:
            handler.flush()
        assert "hello file" in (tmp_path / "logs" / "flowgate.log").read_text()

    def test_repeated_setup_does_not_duplicate_handlers(self):
        cfg = Config.from_dict({})
        setup_logging(cfg)
        root = setup_logging(cfg)
        assert len(root.handlers) == 1


class TestJSONFormatter:
    def test_format(self):
        record = logging.LogRecord("flowgate.x", logging.INFO, __file__, 1, "count=%d", (3,), None)
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "flowgate.x"
        assert data["msg"] == "count=3"
