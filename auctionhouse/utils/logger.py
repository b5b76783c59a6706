"""
Logging for the auction engines.

Every engine module asks for its logger at import time
(``get_logger("english")`` -> ``auctionhouse.english``), which installs a
colored console handler at INFO. The CLI calls ``setup_logging`` later,
once the engine config is loaded, to apply the configured level and
optionally start writing ``auctionhouse.log`` under the config's log_dir.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

ROOT_LOGGER = "auctionhouse"
LOG_FILE_NAME = "auctionhouse.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Bid and refund traffic is DEBUG, settlements INFO, failed payouts WARNING
LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
        datefmt=DATE_FORMAT,
        log_colors=LEVEL_COLORS,
    ))
    return handler


def _file_handler(log_dir: Path, level: int) -> logging.FileHandler:
    log_dir.mkdir(exist_ok=True, parents=True)
    handler = logging.FileHandler(log_dir / LOG_FILE_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] %(levelname)-8s %(message)s",
        datefmt=DATE_FORMAT,
    ))
    return handler


class AuctionLogger:
    """Owns the handlers of the ``auctionhouse`` logger tree."""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
    ):
        """
        Apply a logging level and, optionally, a log file.

        Safe to call more than once: the first call installs the console
        handler, later calls only change the level and add the file handler
        if it is not attached yet.

        Args:
            level: Level for the engine loggers and their handlers
            log_dir: Directory for auctionhouse.log (./logs if None)
            log_to_file: Also write to auctionhouse.log
        """
        root_logger = logging.getLogger(ROOT_LOGGER)

        if not cls._initialized:
            root_logger.handlers.clear()
            root_logger.addHandler(_console_handler(level))
            cls._initialized = True

        if log_to_file and cls._log_dir is None:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            root_logger.addHandler(_file_handler(cls._log_dir, level))

        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Logger for one engine subsystem.

        Args:
            name: Subsystem name ('registry', 'english', 'second_price',
                'escrow', 'nft', 'events', 'cli')
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_logger(name: str) -> logging.Logger:
    return AuctionLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
):
    """Configure engine logging from the CLI (see AuctionLogger.setup)."""
    AuctionLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
