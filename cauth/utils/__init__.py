"""
Logging helpers shared by every cauth module.
"""
import json
import logging
from typing import Any

from cauth.core import config


_ROOT_LOGGER = "cauth"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt="[%(asctime)s %(levelname)s %(name)s] %(message)s",
        datefmt="%d-%m-%Y:%H:%M:%S",
    ))
    root = logging.getLogger(_ROOT_LOGGER)
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger below the ``cauth`` logger hierarchy.

    Modules outside the package (scripts, tests) are attached under it as well
    so that a single handler and level apply everywhere.
    """
    _configure_root()
    if name != _ROOT_LOGGER and not name.startswith(_ROOT_LOGGER + "."):
        name = f"{_ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


log = get_logger(__name__)


def log_database_interaction(title: str, data: dict[str, Any], error: str | None = None) -> None:
    """
    Emit a DEBUG record describing one store mutation.

    Never pass passwords, hashes, tokens or event keys in ``data``.
    """
    status = "OK" if error is None else f"FAILED: {error}"
    log.debug("%s data=%s status=%s", title, json.dumps(data, default=str, sort_keys=True), status)
