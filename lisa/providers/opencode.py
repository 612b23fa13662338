"""OpenCode provider.

Runs ``opencode run <prompt> --format json`` once per turn.
"""

from typing import Any

from lisa.providers.base import (
    ProviderConfig,
    ProviderSpec,
    ProviderStateError,
    StreamEvent,
    as_text,
    error_text,
)
from lisa.providers.process import DEFAULT_RESPONSE_TIMEOUT_SECONDS, ProviderProcess


def build_opencode_args(prompt: str | None, initial: bool) -> list[str]:
    return ["run", prompt or "", "--format", "json", "--quiet"]


def decode_opencode_event(event: dict[str, Any]) -> StreamEvent | None:
    """Map one OpenCode JSON event."""
    event_type = event.get("type")

    if event_type == "message.part.updated":
        part = event.get("part")
        if not isinstance(part, dict):
            part = event
        if part.get("text"):
            return StreamEvent.partial(part["text"])
        if part.get("tool") and part.get("output"):
            return StreamEvent.partial(
                f"[{as_text(part['tool'])}]: {as_text(part['output'])}"
            )
        return None

    if event_type == "session.idle":
        return StreamEvent.terminal()

    if event_type == "session.error":
        error = event.get("error") or event.get("message")
        raise ProviderStateError(f"OpenCode error: {error_text(error)}")

    if event.get("text"):
        return StreamEvent.partial(event["text"])
    if event.get("output"):
        return StreamEvent.terminal(event["output"])
    return None


OPENCODE_SPEC = ProviderSpec(
    name="opencode",
    display_name="OpenCode",
    command="opencode",
    session="per_turn",
    decode_event=decode_opencode_event,
    build_args=build_opencode_args,
)


def create_opencode_provider(
    config: ProviderConfig | None = None,
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
) -> ProviderProcess:
    return ProviderProcess(OPENCODE_SPEC, config, response_timeout)
