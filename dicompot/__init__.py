"""Set module shortcuts and globals"""

import logging

from ._version import __version__


# Convenience imports
# ruff: noqa: E402,F401
from dicompot.catalog import Catalog, Record, build_catalog
from dicompot.matching import FilterMatcher, MatchError, InternalMatchError
from dicompot.responders import (
    QueryCancelled,
    find_matches,
    respond_find,
    respond_retrieve,
)


# Setup default logging
logging.getLogger(__name__).addHandler(logging.NullHandler())


def debug_logger() -> None:
    """Setup the logging for debugging."""
    logger = logging.getLogger(__name__)
    # Ensure only have one StreamHandler
    logger.handlers = []
    handler = logging.StreamHandler()
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(levelname).1s: %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


__all__ = [
    "__version__",
    "Catalog",
    "Record",
    "build_catalog",
    "FilterMatcher",
    "MatchError",
    "InternalMatchError",
    "QueryCancelled",
    "find_matches",
    "respond_find",
    "respond_retrieve",
    "debug_logger",
]
