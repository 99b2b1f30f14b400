"""Pytest configuration shared by the backend test suites."""

import asyncio
import logging

import pytest


@pytest.fixture
def event_loop_policy():
    """Run async tests on the default event loop policy."""
    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture(autouse=True)
def oiquant_logs(caplog):
    """Capture oiquant log records down to DEBUG for every test."""
    caplog.set_level(logging.DEBUG, logger="oiquant")
    return caplog
