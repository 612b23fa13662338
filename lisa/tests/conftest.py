"""Shared fixtures for lisa tests."""

from pathlib import Path

import pytest

from lisa.providers.base import (
    ProviderMessage,
    ProviderResponse,
    ProviderStateError,
)
from lisa.providers.registry import ProviderRegistry
from lisa.state import StateStore


class FakeProvider:
    """In-memory provider that replays queued responses."""

    def __init__(self, responses=None, name: str = "claude"):
        self.name = name
        self.display_name = "Fake Provider"
        self.command = "fake"
        self.responses: list = list(responses or [])
        self.spawn_errors: list[Exception] = []
        self.spawn_prompts: list[str] = []
        self.sent: list[str] = []
        self.cleanup_calls = 0
        self.available = True
        self.running = False

    async def is_available(self) -> bool:
        return self.available

    async def get_version(self) -> str | None:
        return "1.0.0"

    async def spawn(self, system_prompt: str) -> None:
        if self.spawn_errors:
            raise self.spawn_errors.pop(0)
        if self.running:
            raise ProviderStateError("Provider is already running")
        self.running = True
        self.spawn_prompts.append(system_prompt)

    async def send(self, message: ProviderMessage) -> None:
        self.sent.append(message.content)

    async def receive(self) -> ProviderResponse:
        if not self.responses:
            raise ProviderStateError("Timeout waiting for Fake Provider response after 10ms")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def cleanup(self) -> None:
        self.cleanup_calls += 1
        self.running = False

    def is_running(self) -> bool:
        return self.running


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def registry(fake_provider: FakeProvider) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register("claude", lambda config: fake_provider)
    return registry


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path)
