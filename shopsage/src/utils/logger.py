"""
ShopSage - Logging
===================
Provides a pre-configured logger factory for consistent, readable
log output across all ShopSage modules.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (maximum detail)
  • ``"prod"`` → WARNING level (errors & warnings only)

``settings.LOG_LEVEL`` (e.g. ``"INFO"``) overrides the environment default.

Every message carries a bracketed component tag (``[CHAT]``, ``[LLM]``,
``[RETRIEVE]`` …) so one request can be followed across modules.

Usage:
    from shopsage.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[CHAT] Session %s started.", session_id)
"""

import logging
import sys

from shopsage.config.settings import settings

# ── Resolve default level from environment mode ───────────────────────
_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}


def _resolve_default_level() -> int:
    if settings.LOG_LEVEL:
        level = logging.getLevelName(settings.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


_DEFAULT_LEVEL = _resolve_default_level()

# SDK loggers that flood DEBUG output with transport chatter
_NOISY_LOGGERS = ("httpx", "httpcore", "pymongo", "lancedb", "google_genai", "urllib3")


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Create and return a named logger with a standardised formatter.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit logging level override.
               If *None*, the level is derived from settings.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    # Avoid adding duplicate handlers if the logger already exists
    if not logger.handlers:
        logger.setLevel(resolved_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved_level)

        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        # Prevent log propagation to the root logger (avoids duplicates)
        logger.propagate = False

    return logger


def quiet_third_party_loggers(level: int = logging.WARNING) -> None:
    """Raise the threshold of chatty SDK loggers so request logs stay readable."""
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
