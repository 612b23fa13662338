"""GitHub Copilot provider.

Runs the ``gh copilot`` extension once per turn. Follow-up turns that ask
for an explanation use ``explain``; everything else uses ``suggest``.
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

EXPLAIN_TRIGGERS = ("explain", "what does", "how does")


def build_copilot_args(prompt: str | None, initial: bool) -> list[str]:
    text = prompt or ""
    if not initial and any(trigger in text.lower() for trigger in EXPLAIN_TRIGGERS):
        return ["copilot", "explain", text]
    return ["copilot", "suggest", "-t", "shell", text]


def decode_copilot_event(event: dict[str, Any]) -> StreamEvent | None:
    """Map one Copilot JSON event."""
    event_type = event.get("type")

    if event_type == "error" or event.get("error"):
        error = event.get("error") or event.get("message")
        raise ProviderStateError(f"Copilot error: {error_text(error)}")

    if event_type in ("result", "complete", "done"):
        return StreamEvent.terminal(
            first_text(event, "text", "content", "suggestion", "explanation", "message")
        )

    if "suggestion" in event:
        return StreamEvent.terminal(event["suggestion"])
    if "explanation" in event:
        return StreamEvent.terminal(event["explanation"])

    if event_type in ("text", "content", "message"):
        return StreamEvent.partial(first_text(event, "text", "content", "message"))

    text = first_text(event, "text", "content")
    if text is not None:
        return StreamEvent.partial(text)
    if "result" in event:
        return StreamEvent.terminal(event["result"])
    if "message" in event:
        return StreamEvent.terminal(event["message"])
    if "status" in event:
        return StreamEvent.partial()
    return None


COPILOT_SPEC = ProviderSpec(
    name="copilot",
    display_name="GitHub Copilot",
    command="gh",
    session="per_turn",
    decode_event=decode_copilot_event,
    build_args=build_copilot_args,
    availability_probe=("copilot", "--help"),
    availability_marker="copilot",
    version_probes=((("copilot", "--version"), ""), (("--version",), "gh ")),
)


def create_copilot_provider(
    config: ProviderConfig | None = None,
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
) -> ProviderProcess:
    return ProviderProcess(COPILOT_SPEC, config, response_timeout)
