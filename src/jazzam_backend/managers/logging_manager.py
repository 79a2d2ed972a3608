"""
Logging manager for the Jazzam backend.

Every module obtains its logger through `get_logger()`, optionally with a bracketed prefix
that tags the subsystem (e.g. `[TENANT_POOL]`, `[DATABASE]`). All loggers share the
`Jazzam_Backend` root so that one handler and one level apply across the application.

Example:
    ```python
    from jazzam_backend.managers.logging_manager import get_logger

    logger = get_logger(prefix="[TENANT_POOL]")
    logger.info(f"Creating connection for tenant: {tenant_id}")
    # 2026-01-01 10:00:00,000 | INFO | Jazzam_Backend | [TENANT_POOL] Creating connection for tenant: abc
    ```
"""

import logging
import sys
from typing import Any, Dict, MutableMapping, Tuple

from jazzam_backend.config import settings

DEFAULT_LOGGER_NAME = "Jazzam_Backend"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured: Dict[str, bool] = {}


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Prepends a fixed prefix to every message emitted through the adapter."""

    def __init__(self, logger: logging.Logger, prefix: str):
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def _configure(logger: logging.Logger) -> None:
    if _configured.get(logger.name):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO))
    logger.propagate = True
    _configured[logger.name] = True


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a logger for `name`, tagging every message with `prefix`.

    Args:
        name: Underlying logger name. Defaults to the application root logger.
        prefix: Subsystem tag such as `"[DATABASE]"`.

    Returns:
        PrefixedLoggerAdapter: A logger-compatible adapter.
    """
    base = logging.getLogger(name)
    _configure(base)
    return PrefixedLoggerAdapter(base, prefix)
