"""Shared types for AI provider processes.

A provider is described by a ProviderSpec: which binary to run, how to build
its argument vector, which session model it follows, and how to decode one
JSON event from its stdout. ProviderProcess (process.py) runs any spec.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

ProviderName = Literal["claude", "codex", "copilot", "cursor", "opencode"]
PROVIDER_NAMES: tuple[ProviderName, ...] = (
    "claude",
    "codex",
    "copilot",
    "cursor",
    "opencode",
)

SessionModel = Literal["persistent", "per_turn"]


class ProviderNotFoundError(Exception):
    """Raised when a provider name is not registered."""

    def __init__(self, name: str):
        super().__init__(f'Provider "{name}" is not registered')
        self.name = name


class ProviderNotAvailableError(Exception):
    """Raised when a provider's CLI binary cannot be found."""

    def __init__(self, name: str, command: str):
        super().__init__(
            f'Provider "{name}" CLI tool "{command}" is not installed or not in PATH'
        )
        self.name = name
        self.command = command


class ProviderStateError(Exception):
    """Raised for provider lifecycle and stream failures."""

    pass


@dataclass(frozen=True)
class ProviderConfig:
    """Per-instance overrides for a provider.

    Attributes:
        command: Binary to run instead of the provider default
        args: Extra arguments appended after the provider's own
        env: Environment variables layered over the current environment
    """

    command: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderMessage:
    """One message sent to a provider."""

    content: str


@dataclass(frozen=True)
class ProviderResponse:
    """A normalized response decoded from provider output.

    Attributes:
        content: Text content (the delta for partial responses)
        is_complete: True for the terminal response of a turn
        structured: Raw decoded event, if the response came from one
    """

    content: str
    is_complete: bool
    structured: Any = None


@dataclass(frozen=True)
class StreamEvent:
    """Result of decoding one provider JSON event."""

    kind: Literal["partial", "terminal"]
    content: str = ""

    @classmethod
    def partial(cls, content: Any = "") -> "StreamEvent":
        return cls("partial", as_text(content))

    @classmethod
    def terminal(cls, content: Any = "") -> "StreamEvent":
        return cls("terminal", as_text(content))


EventDecoder = Callable[[dict[str, Any]], StreamEvent | None]
ArgsBuilder = Callable[[str | None, bool], list[str]]


def as_text(value: Any) -> str:
    """Render an event field as text, JSON-encoding non-strings."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def first_text(event: dict[str, Any], *keys: str) -> str | None:
    """Return the first present, non-empty field among ``keys``."""
    for key in keys:
        value = event.get(key)
        if value:
            return as_text(value)
    return None


def error_text(error: Any) -> str:
    """Extract a readable message from an error field."""
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return as_text(error) or "Unknown error"


def plain_line(text: str) -> str:
    """Default stdin encoding for persistent sessions."""
    return text + "\n"


def _no_args(prompt: str | None, initial: bool) -> list[str]:
    return []


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of one AI CLI.

    Attributes:
        name: Registry name
        display_name: Human-readable name used in messages
        command: Default binary name
        session: "persistent" (one process, prompts on stdin) or
            "per_turn" (new process per turn, prompt as an argument)
        decode_event: Maps one decoded JSON object onto a StreamEvent, returns
            None for events to ignore, raises ProviderStateError for error events
        build_args: Builds arguments from (prompt, initial). The prompt is None
            for persistent sessions.
        encode_input: Encodes one message for a persistent session's stdin
        availability_probe: Extra arguments to run when checking availability
        availability_marker: Text the probe output must contain
        version_probes: (args, prefix) pairs tried in order by get_version();
            a non-empty prefix keeps only the first output line
    """

    name: str
    display_name: str
    command: str
    session: SessionModel
    decode_event: EventDecoder
    build_args: ArgsBuilder = _no_args
    encode_input: Callable[[str], str] = plain_line
    availability_probe: tuple[str, ...] | None = None
    availability_marker: str | None = None
    version_probes: tuple[tuple[tuple[str, ...], str], ...] = ((("--version",), ""),)


class AIProvider(Protocol):
    """Contract every provider process satisfies."""

    @property
    def name(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    async def is_available(self) -> bool: ...

    async def get_version(self) -> str | None: ...

    async def spawn(self, system_prompt: str) -> None: ...

    async def send(self, message: ProviderMessage) -> None: ...

    async def receive(self) -> ProviderResponse: ...

    async def cleanup(self) -> None: ...

    def is_running(self) -> bool: ...
