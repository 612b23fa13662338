"""Codex provider.

Runs ``codex exec <prompt> --json`` once per turn and decodes its JSONL
event stream.
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


def build_codex_args(prompt: str | None, initial: bool) -> list[str]:
    return ["exec", prompt or "", "--json"]


def _item_text(event: dict[str, Any]) -> str | None:
    item = event.get("item")
    if isinstance(item, dict):
        return first_text(item, "text", "content")
    return None


def decode_codex_event(event: dict[str, Any]) -> StreamEvent | None:
    """Map one Codex JSONL event."""
    event_type = event.get("type")

    if event_type == "turn.completed":
        return StreamEvent.terminal(first_text(event, "text", "content", "message"))

    if event_type == "item.completed":
        return StreamEvent.partial(
            first_text(event, "text", "content") or _item_text(event)
        )

    if event_type in ("item.started", "thread.started", "turn.started"):
        return StreamEvent.partial()

    if event_type in ("turn.failed", "error"):
        error = event.get("error") or event.get("message")
        raise ProviderStateError(f"Codex error: {error_text(error)}")

    text = first_text(event, "text", "content")
    if text is not None:
        return StreamEvent.partial(text)
    if "result" in event:
        return StreamEvent.terminal(event["result"])
    if "message" in event:
        return StreamEvent.terminal(event["message"])
    return None


CODEX_SPEC = ProviderSpec(
    name="codex",
    display_name="Codex",
    command="codex",
    session="per_turn",
    decode_event=decode_codex_event,
    build_args=build_codex_args,
)


def create_codex_provider(
    config: ProviderConfig | None = None,
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
) -> ProviderProcess:
    return ProviderProcess(CODEX_SPEC, config, response_timeout)
