"""Fixtures shared by the dicompot tests."""

import logging

import pytest


@pytest.fixture
def restore_loggers():
    """Restore the application and pynetdicom loggers after a test."""
    loggers = [logging.getLogger("dicompot"), logging.getLogger("pynetdicom")]
    state = [(lg, list(lg.handlers), lg.level, lg.propagate) for lg in loggers]
    yield
    for logger, handlers, level, propagate in state:
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()

        logger.handlers = handlers
        logger.setLevel(level)
        logger.propagate = propagate
