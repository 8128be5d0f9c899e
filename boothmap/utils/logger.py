import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s"
PACKAGE_LOGGER = "boothmap"


def _swap_file_handler(logger: logging.Logger, handler) -> None:
    for existing in list(logger.handlers):
        if isinstance(existing, RotatingFileHandler):
            logger.removeHandler(existing)
            existing.close()
    if handler is not None:
        logger.addHandler(handler)


def init_logging(app):
    """Configure logging for the booth map service.

    Everything under the ``boothmap`` logger goes to a size-rotated file in
    ``LOG_DIR``; the root logger keeps a stderr stream for the platform's
    log tail.  Calling this again (one app per test) replaces the file
    handler rather than stacking another.
    """
    log_level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, log_level, logging.INFO)

    handler = None
    log_dir = app.config.get("LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            os.path.join(log_dir, "boothmap.log"),
            maxBytes=int(app.config.get("LOG_MAX_BYTES", 1_000_000)),
            backupCount=int(app.config.get("LOG_BACKUP_COUNT", 3)),
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    pkg_logger.setLevel(numeric_level)
    _swap_file_handler(pkg_logger, handler)
    # urllib3 logs every connection at DEBUG; keep it out of the booth log
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.WARNING))

    app.logger = pkg_logger
    app.logger.info("Logging initialized at %s level", log_level)
