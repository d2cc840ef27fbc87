import logging
import os
from logging.handlers import RotatingFileHandler

PACKAGE_LOGGER = "longitudinal_mlm"

_loggers = {}


def get_logger(name=PACKAGE_LOGGER):
    """Return the named logger.

    Module loggers (``longitudinal_mlm.<module>``) carry no handler of their
    own and propagate to the package logger; any other name, the package
    logger included, gets the single rotating file handler on first use.
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    if not name.startswith(PACKAGE_LOGGER + "."):
        _attach_file_handler(logger)

    _loggers[name] = logger
    return logger


def _attach_file_handler(logger):
    log_dir = os.environ.get("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    # Read log file name from ENV, fallback to run.log
    log_file = os.environ.get("LOG_FILE", "run.log")
    log_path = os.path.join(log_dir, log_file)

    logger.setLevel(logging.INFO)

    if not logger.handlers:
        handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=5)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
