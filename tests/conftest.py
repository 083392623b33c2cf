"""Shared pytest fixtures for companion tests."""

from __future__ import annotations

import pytest

from companion.candidates.base import DispatchContext
from companion.config.settings import Settings
from tests.fakes import FakeClock, make_context, make_settings


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def context(settings) -> DispatchContext:
    return make_context(settings)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
