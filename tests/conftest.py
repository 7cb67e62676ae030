"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from tabgroups.background import Background
from tabgroups.engine.service import TabGroupService
from tabgroups.host.memory import InMemoryBrowser
from tabgroups.models.config import Settings
from tabgroups.models.rule import Rule, TabGroupColor
from tabgroups.state import TabGroupState
from tabgroups.utils.retry import RetryConfig

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def reset_env() -> Generator[None]:
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry config without real sleeping."""
    return RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def browser() -> InMemoryBrowser:
    """Empty in-memory browser with one focused window."""
    return InMemoryBrowser()


@pytest.fixture
def state() -> TabGroupState:
    """Default state: domain grouping, minimum group size 1, no rules."""
    return TabGroupState(settings=Settings())


@pytest.fixture
def service(
    browser: InMemoryBrowser,
    state: TabGroupState,
    fast_retry: RetryConfig,
) -> TabGroupService:
    """Grouping service over the in-memory browser."""
    return TabGroupService(browser, state, retry_config=fast_retry)


@pytest.fixture
def background(browser: InMemoryBrowser, state: TabGroupState) -> Background:
    """Fully wired background without a state file."""
    return Background(browser, state=state)


@pytest.fixture
def github_rule() -> Rule:
    """Rule collecting GitHub tabs, relying on automatic subdomain matching."""
    return Rule(name="Dev", patterns=("github.com",), color=TabGroupColor.PURPLE)


@pytest.fixture
def github_api_rule() -> Rule:
    """Same priority as ``github_rule`` but with a longer, more specific pattern."""
    return Rule(name="API", patterns=("api.github.com",), color=TabGroupColor.ORANGE)
