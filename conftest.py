"""
Global pytest configuration for ralph.
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def reset_ralph_logger():
    """Drop handlers a test installed so later tests start from a clean logger."""
    yield
    logger = logging.getLogger("ralph")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
