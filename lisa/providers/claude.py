"""Claude Code provider.

Runs ``claude --print`` as one persistent session. Turns are written to stdin
as stream-json user messages and responses arrive as stream-json events.
"""

import json
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

CLAUDE_ARGS = [
    "--print",
    "--output-format",
    "stream-json",
    "--input-format",
    "stream-json",
    "--verbose",
]


def build_claude_args(prompt: str | None, initial: bool) -> list[str]:
    return list(CLAUDE_ARGS)


def encode_claude_input(text: str) -> str:
    """Wrap text as one stream-json user message line."""
    message = {"type": "user", "message": {"role": "user", "content": text}}
    return json.dumps(message) + "\n"


def _message_text(message: Any) -> str:
    """Join the text blocks of an assistant message."""
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    return "".join(
        as_text(block.get("text"))
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    )


def decode_claude_event(event: dict[str, Any]) -> StreamEvent | None:
    """Map one Claude stream-json event."""
    event_type = event.get("type")

    if event_type == "result":
        return StreamEvent.terminal(event.get("result"))

    if event_type == "assistant":
        return StreamEvent.partial(_message_text(event.get("message")))

    if event_type == "content_block_delta":
        delta = event.get("delta")
        if isinstance(delta, dict) and delta.get("type") == "text_delta":
            return StreamEvent.partial(delta.get("text"))
        return None

    if event_type in ("message_stop", "content_block_stop"):
        return StreamEvent.terminal()

    if event_type == "error":
        raise ProviderStateError(f"Claude error: {error_text(event.get('error'))}")

    return None


CLAUDE_SPEC = ProviderSpec(
    name="claude",
    display_name="Claude Code",
    command="claude",
    session="persistent",
    decode_event=decode_claude_event,
    build_args=build_claude_args,
    encode_input=encode_claude_input,
)


def create_claude_provider(
    config: ProviderConfig | None = None,
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
) -> ProviderProcess:
    return ProviderProcess(CLAUDE_SPEC, config, response_timeout)
