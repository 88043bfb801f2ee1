#!/usr/bin/env python3

import logging
import logging.config

from pythonjsonlogger import jsonlogger

from .config import migrator_config


def setup_logging(level: str = None):
    """Setup JSON logging configuration"""
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(map_file)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stderr"
            }
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": (level or migrator_config.LOG_LEVEL).upper(),
                "propagate": False
            }
        }
    }

    logging.config.dictConfig(logging_config)
