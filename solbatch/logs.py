"""
Run reporting.

Each run gets two append-only log files: one for transaction / result events
and one for errors. Both are handed to the workflows through a Reporter
instead of being looked up globally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

LOG_FORMAT = "%(levelname)s - %(asctime)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _file_logger(name: str, path: Path, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger


@dataclass
class Reporter:
    transactions: logging.Logger
    errors: logging.Logger
    echo: Callable[[str], None] = print

    def retry_warning(self, *, attempt: int, delay_seconds: float, exception: BaseException) -> None:
        delay_ms = int(delay_seconds * 1000)
        self.transactions.warning("Rate limited (attempt %s). Retrying in %sms... (%s)", attempt, delay_ms, exception)
        self.echo(f"Error 429 Too Many Requests. Retrying in {delay_ms}ms...")

    def close(self) -> None:
        for logger in (self.transactions, self.errors):
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()


def setup_loggers(
    transactions_log: Path,
    errors_log: Path,
    *,
    name: str = "solbatch",
    echo: Callable[[str], None] = print,
) -> Reporter:
    for path in (transactions_log, errors_log):
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    return Reporter(
        transactions=_file_logger(f"{name}.transactions", Path(transactions_log), logging.INFO),
        errors=_file_logger(f"{name}.errors", Path(errors_log), logging.ERROR),
        echo=echo,
    )
