"""
Shared fixtures: settings isolated from the environment, in-memory storage
and state stores.
"""

import pytest

from domain.context.document_matcher import DocumentMatcher
from domain.context.state.state_manager import StateStore
from infrastructure.config.settings import Settings, reset_settings
from infrastructure.storage.state_storage import InMemoryStateStorage


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep PERCIFY_* variables from the developer's shell out of tests"""
    monkeypatch.setenv("PERCIFY_LANGFUSE_ENABLED", "false")
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        log_level="WARNING",
        log_format="console",
        inference_timeout=5,
        tool_timeout=2,
        langfuse_enabled=False,
    )


@pytest.fixture
def storage():
    return InMemoryStateStorage()


@pytest.fixture
def state_store(storage):
    return StateStore("session-1", storage)


@pytest.fixture
def matcher():
    return DocumentMatcher("https://docs.percify.io")
