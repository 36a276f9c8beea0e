import logging.config
import os
from typing import Optional

import config

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(log_dir: Optional[str] = None) -> None:
    """Console output in development; info.log and error.log everywhere."""
    log_dir = log_dir or config.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)

    handlers = {
        "info_file": {
            "class": "logging.FileHandler",
            "level": "INFO",
            "formatter": "file",
            "filename": os.path.join(log_dir, "info.log"),
        },
        "error_file": {
            "class": "logging.FileHandler",
            "level": "ERROR",
            "formatter": "file",
            "filename": os.path.join(log_dir, "error.log"),
        },
    }
    if config.ENV == "development":
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "console",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "file": {"format": FILE_FORMAT},
            "console": {"format": "%(levelname)s: %(message)s"},
        },
        "handlers": handlers,
        "loggers": {
            "vidly": {"level": "INFO", "handlers": list(handlers), "propagate": False},
        },
    })
