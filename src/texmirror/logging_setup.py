from __future__ import annotations

import logging

LOG = logging.getLogger("texmirror")

LOG_FORMAT = "%(levelname)s: %(message)s"


def resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    level = resolve_log_level(verbose, debug)
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        LOG.addHandler(handler)
    for handler in LOG.handlers:
        handler.setLevel(level)
        if handler.formatter is None:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
