# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Shared fixtures for round engine tests."""

import pytest

from roundtable_config import EngineSettings
from roundtable_rounds import RoundStateMachine, Thread

from tests.helpers import make_participants


@pytest.fixture
def thread():
    """A thread without web search whose title was already generated."""
    return Thread(id="t1", slug="t1-slug", is_ai_generated_title=True)


@pytest.fixture
def search_thread():
    """A thread with web search enabled and no generated title yet."""
    return Thread(id="t1", slug="t1-slug", enable_web_search=True)


@pytest.fixture
def participants():
    return make_participants(3)


@pytest.fixture
def settings():
    """Settings with short timings suitable for tests."""
    return EngineSettings(
        pre_search_sweep_interval_seconds=3600,
        animation_timeout_ms=50,
        pre_search_poll_interval_ms=1,
        title_poll_interval_ms=1,
        title_poll_max_attempts=5,
    )


@pytest.fixture
def machine(settings, thread, participants):
    """A state machine with a loaded thread and no rounds."""
    m = RoundStateMachine(settings)
    m.load(thread, participants)
    return m
