from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from boothmap import create_app


def _file_handlers():
    return [h for h in logging.getLogger("boothmap").handlers if isinstance(h, RotatingFileHandler)]


def test_app_logger_writes_to_log_dir(app_config, tmp_path):
    app_config["LOG_DIR"] = str(tmp_path / "first")
    app = create_app(app_config)

    app.logger.warning("booth log line")
    for handler in _file_handlers():
        handler.flush()

    assert app.logger.name == "boothmap"
    text = (tmp_path / "first" / "boothmap.log").read_text(encoding="utf-8")
    assert "booth log line" in text
    assert "[WARNING] [boothmap:" in text


def test_reinitialising_replaces_file_handler(app_config, tmp_path):
    app_config["LOG_DIR"] = str(tmp_path / "a")
    create_app(app_config)
    app_config["LOG_DIR"] = str(tmp_path / "b")
    app = create_app(app_config)

    handlers = _file_handlers()
    assert len(handlers) == 1
    assert handlers[0].baseFilename == str(tmp_path / "b" / "boothmap.log")
    assert app.logger.level == logging.DEBUG
