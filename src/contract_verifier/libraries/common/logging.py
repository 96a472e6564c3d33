import copy
import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from logging import Logger, LogRecord, config
from pathlib import Path

import yaml

from contract_verifier.libraries.common.ansi_colors import ColorCodes, color

# Label of the interaction being verified in the current context
_interaction: ContextVar[str | None] = ContextVar("interaction", default=None)

LEVEL_COLORS = {
    logging.DEBUG: ColorCodes.DARK_GREY,
    logging.WARNING: ColorCodes.YELLOW,
    logging.ERROR: ColorCodes.RED,
    logging.CRITICAL: ColorCodes.RED,
}


def setup_logging(config_path: str | Path) -> None:
    """Configure logging with a dictConfig YAML file

    :param config_path: File path to a logging config
    """
    log_cfg = yaml.safe_load(Path(config_path).read_text())
    config.dictConfig(log_cfg)


def get_logger(name: str) -> Logger:
    """Return a logger under the package's root logger

    :param name: Logger name
    """
    pkg_name = __name__.split(".")[0]
    if not name.startswith(pkg_name):
        name = f"{pkg_name}.{name}"
    return logging.getLogger(name)


@contextmanager
def interaction_context(label: str) -> Generator[None]:
    """Tag log records emitted in this context with the interaction label"""
    token = _interaction.set(label)
    try:
        yield
    finally:
        _interaction.reset(token)


class ColoredStreamHandler(logging.StreamHandler):
    """StreamHandler that colors each line by the record's level"""

    def format(self, record: LogRecord) -> str:
        msg = super().format(record)
        if color_code := LEVEL_COLORS.get(record.levelno):
            return color(msg, color_code=color_code)
        return msg


class LogFormatter(logging.Formatter):
    """Formatter that supports %f and %z in datefmt and adds the interaction being verified to each message

    eg. 2024-01-01T11:22:33.444555+0000 - contract_verifier.verifier - INFO - [demo-consumer: get user 1] PASSED
    """

    def formatTime(self, record: LogRecord, datefmt: str | None = None) -> str:
        if not datefmt:
            return super().formatTime(record)
        return datetime.fromtimestamp(record.created).astimezone().strftime(datefmt)

    def formatMessage(self, record: LogRecord) -> str:
        if interaction := _interaction.get():
            record = copy.copy(record)
            record.message = f"[{interaction}] {record.message}"
        return super().formatMessage(record)
