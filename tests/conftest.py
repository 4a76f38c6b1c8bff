"""Shared fixtures for the crawler tests."""

import logging

import pytest

from url_crawler.utils.config import CrawlerConfig


@pytest.fixture
def fast_config():
    """Crawler settings with no politeness delay and short idle waits."""
    return CrawlerConfig(
        worker_count=1,
        politeness_delay=0,
        idle_backoff=0.001,
        termination_grace=0.001
    )


@pytest.fixture
def restore_logging():
    """Put the root logger back the way it was after a test reconfigures it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        # pytest swaps its own capture handlers in and out between phases
        if handler in handlers or type(handler).__module__.startswith("_pytest"):
            continue
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)
