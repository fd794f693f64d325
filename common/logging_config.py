# common/logging_config.py
import json
import logging
import os

LOGGER_NAME = "carmommy"


def configure_logging(level=None):
    if level is None:
        level = getattr(logging, os.getenv("LOGLEVEL", "INFO").upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        ch.setFormatter(fmt)
        logger.addHandler(ch)
    return logger


def truncate(value, limit: int = 1000) -> str:
    """Shorten transcripts and LLM payloads before they hit the log."""
    if not isinstance(value, str):
        try:
            value = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            value = str(value)
    return value if len(value) <= limit else value[:limit] + " …[truncated]"
