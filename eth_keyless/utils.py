"""Logging setup for operator scripts."""

import logging
import os
from pathlib import Path
from typing import Optional

import coloredlogs


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up coloured log output.

    - Log level comes from ``LOG_LEVEL`` environment variable, falling back to ``default_log_level``
    - Tune down some noisy dependency library logging

    :param simplified_logging:
        Only print the message, no timestamps or logger names

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-30s %(message)s"
    date_fmt = "%H:%M:%S"

    coloredlogs.install(level=numeric_level, fmt=fmt, datefmt=date_fmt)

    if log_file:
        assert isinstance(log_file, Path), "log_file must be a Path"
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # The file always gets at least INFO, env var controls only terminal output
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(min(logging.INFO, numeric_level))
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))
        root = logging.getLogger()
        root.setLevel(min(logging.INFO, numeric_level))
        root.addHandler(file_handler)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return logging.getLogger()
