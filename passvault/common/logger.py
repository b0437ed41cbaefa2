"""Logging setup shared by the server and the client.

Messages get the same symbolic prefixes the console output has always used
([+], [*], [!], [x]).
"""

import logging
import os

from passvault.common.config import Settings


_SYMBOLIC_PREFIXES = {
    "DEBUG": "[~]",
    "INFO": "[+]",
    "WARNING": "[!]",
    "ERROR": "[!]",
    "CRITICAL": "[x]",
}


class SymbolicFormatter(logging.Formatter):
    """Formatter that prepends a symbolic level indicator."""

    def format(self, record):
        symbol = _SYMBOLIC_PREFIXES.get(record.levelname, "[*]")
        return f"{symbol} {super().format(record)}"


def setup_logger(settings: Settings) -> None:
    """
    Configure the root logger from settings.

    Args:
        settings: Settings carrying log_level and an optional log_file
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logger = logging.getLogger()
    logger.setLevel(log_level)
    logger.handlers.clear()

    formatter = SymbolicFormatter("%(asctime)s %(name)s: %(message)s", "%H:%M:%S")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
