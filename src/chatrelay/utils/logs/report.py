"""Configures the logging system for the relay modules."""
import os
import sys
import logging
from logging.handlers import RotatingFileHandler

# Log files live beside this module unless CHATRELAY_LOG_DIR points elsewhere.
LOG_DIR_ENV = "CHATRELAY_LOG_DIR"

# Console handlers of every logger handed out so far, so the debug flag can
# be applied after the modules have been imported.
_console_handlers = []
_console_level = logging.INFO


def settings(script_path):
    """Return a named logger writing to logs/<module>.log and the console."""
    script_name = os.path.basename(script_path)
    root = os.path.dirname(os.path.dirname(__file__))
    log_dir = os.environ.get(LOG_DIR_ENV) or os.path.join(root, 'logs')
    log_name = script_name.rsplit('.', 1)[0] + '.log'
    log_file = os.path.join(log_dir, log_name)
    os.makedirs(os.path.dirname(log_file), exist_ok=True)

    logger = logging.getLogger(script_name)

    # Prevent adding multiple handlers
    if not logger.handlers:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1024*1024*10,  # 10 MB
            backupCount=10,
            encoding='utf-8'
        )
        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s [%(filename)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(_console_level)
        logger.addHandler(console_handler)
        _console_handlers.append(console_handler)

        logger.setLevel(logging.DEBUG)
        logger.propagate = False

    return logger


def configure(debug: bool) -> None:
    """Switch console output between INFO and DEBUG for all relay loggers."""
    global _console_level
    _console_level = logging.DEBUG if debug else logging.INFO
    for handler in _console_handlers:
        handler.setLevel(_console_level)
