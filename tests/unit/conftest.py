"""Shared fixtures for unit tests."""

import logging

import pytest


@pytest.fixture(autouse=True)
def registration_logs_reach_caplog():
    """Route ``registration.*`` records to the root logger where caplog listens.

    ``configure_logging`` turns propagation off for the service logger tree.
    """
    logger = logging.getLogger("registration")
    previous = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = previous
