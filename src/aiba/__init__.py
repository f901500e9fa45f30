"""AI BA assistant backend.

Importing the package sets up the ``aiba`` logger tree. Modules log under
child loggers (``aiba.llm``, ``aiba.store``, ``aiba.persistence``,
``aiba.telemetry``), so the logger name is part of every line.
"""
import logging
import os


_FORMAT = "[AIBA][%(levelname)s] %(name)s: %(message)s"


def _level(env_key: str, default: str) -> int:
    name = (os.getenv(env_key) or default).upper()
    return getattr(logging, name, logging.INFO)


def _configure_logging() -> None:
    logger = logging.getLogger("aiba")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    base = os.getenv("AIBA_LOG_LEVEL") or "INFO"
    logger.setLevel(_level("AIBA_LOG_LEVEL", "INFO"))
    # Relay chatter (one line per session start/end) can be tuned on its own
    logging.getLogger("aiba.llm").setLevel(_level("AIBA_LLM_LOG_LEVEL", base))


_configure_logging()
