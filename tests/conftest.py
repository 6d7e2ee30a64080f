"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Iterator

import pytest

from sheetpilot.services.telemetry import InMemoryEventSink
from tests.helpers import FakeResourceClient, make_handle


@pytest.fixture
def telemetry_sink() -> Iterator[InMemoryEventSink]:
    sink = InMemoryEventSink().attach()
    try:
        yield sink
    finally:
        sink.detach()


@pytest.fixture
def resource_client() -> FakeResourceClient:
    return FakeResourceClient(values=[["Region", "Total"], ["North", 120], ["South", 80]], range_label="Sheet1!A1:B3")


@pytest.fixture
def resource_handle(resource_client: FakeResourceClient):
    return make_handle(resource_client)
