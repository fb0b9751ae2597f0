"""
Logging setup for the delegate tracker.

All module loggers live under the "delegate_tracker" logger, which gets a
single console handler the first time any of them is requested. The level
comes from DT_LOG_LEVEL and can be changed at runtime with set_log_level.
"""

import logging
import os
from typing import Optional, Union

ROOT_LOGGER = "delegate_tracker"
_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(_parse_level(os.getenv("DT_LOG_LEVEL", "INFO")))
    return root


def _parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for a module; names outside the package are nested under it."""
    root = _configure_root()
    if not name or name == ROOT_LOGGER:
        return root
    if not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def set_log_level(level: Union[str, int]) -> None:
    _configure_root().setLevel(_parse_level(level))
