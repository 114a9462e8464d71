"""
Pytest configuration and fixtures for resource-writer.

Provides cross-platform event loop configuration, settings with short delays
and the in-memory fake store.
"""

import asyncio
import sys

import pytest

from fakes import (
    FakeAssetsClient,
    FakeDatapointsClient,
    FakeEventsClient,
    FakeSequencesClient,
    FakeTimeSeriesClient,
)
from resource_writer import WriterSettings

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def settings():
    """Settings with delays short enough for unit tests."""
    return WriterSettings(
        _env_file=None,
        fatal_retry_delay=0.01,
        duplicate_base_delay=0.001,
        delete_verify_delay=0.001,
    )


@pytest.fixture
def timeseries_client():
    return FakeTimeSeriesClient()


@pytest.fixture
def datapoints_client(timeseries_client):
    return FakeDatapointsClient(timeseries_client)


@pytest.fixture
def assets_client():
    return FakeAssetsClient()


@pytest.fixture
def events_client():
    return FakeEventsClient()


@pytest.fixture
def sequences_client():
    return FakeSequencesClient()
