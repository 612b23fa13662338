"""Cursor provider.

Runs the Cursor ``agent`` CLI in print mode once per turn.
"""

from typing import Any

from lisa.providers.base import (
    ProviderConfig,
    ProviderSpec,
    ProviderStateError,
    StreamEvent,
    error_text,
    first_text,
)
from lisa.providers.process import DEFAULT_RESPONSE_TIMEOUT_SECONDS, ProviderProcess


def build_cursor_args(prompt: str | None, initial: bool) -> list[str]:
    return ["-p", prompt or "", "--output-format", "json"]


def decode_cursor_event(event: dict[str, Any]) -> StreamEvent | None:
    """Map one Cursor JSON event."""
    event_type = event.get("type")

    if event_type in ("text", "content"):
        return StreamEvent.partial(first_text(event, "text", "content"))
    if event_type == "result":
        return StreamEvent.terminal(first_text(event, "result", "text", "content"))
    if event_type in ("complete", "done", "end"):
        return StreamEvent.terminal()
    if event_type == "error":
        error = event.get("error") or event.get("message")
        raise ProviderStateError(f"Cursor error: {error_text(error)}")

    text = first_text(event, "content", "text")
    if text is not None:
        return StreamEvent.partial(text)
    if "message" in event:
        return StreamEvent.terminal(event["message"])
    return None


CURSOR_SPEC = ProviderSpec(
    name="cursor",
    display_name="Cursor",
    command="agent",
    session="per_turn",
    decode_event=decode_cursor_event,
    build_args=build_cursor_args,
)


def create_cursor_provider(
    config: ProviderConfig | None = None,
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
) -> ProviderProcess:
    return ProviderProcess(CURSOR_SPEC, config, response_timeout)
