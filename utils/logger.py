import logging
import os
import sys

from config import APP_NAME, DATA_DIR, LOG_FILE, LOG_LEVEL


def get_app_data_dir():
    """Return the writable app data directory, or None when it cannot be created."""
    try:
        os.makedirs(DATA_DIR, exist_ok=True)
    except OSError:
        return None
    return DATA_DIR


def setup_logger(name=APP_NAME):
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    # File handler gets full detail when the data dir is writable
    if get_app_data_dir():
        try:
            fh = logging.FileHandler(LOG_FILE, encoding="utf-8")
        except OSError:
            fh = None
        if fh is not None:
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))
            logger.addHandler(fh)

    # Console shows INFO and above unless TIMECLOCK_LOG_LEVEL says otherwise
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    ch.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    logger.addHandler(ch)

    return logger


logger = setup_logger()
