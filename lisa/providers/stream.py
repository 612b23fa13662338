"""Line-oriented decoding of provider stdout.

The decoder is a pure value: StreamState holds the unconsumed text and the
content accumulated so far in the current turn. Each function takes a state
and returns a new one, so the process wrapper owns no parsing logic.
"""

import json
from dataclasses import dataclass, replace

from lisa.providers.base import EventDecoder, ProviderResponse, ProviderStateError


@dataclass(frozen=True)
class StreamState:
    """Decoder state for one provider process.

    Attributes:
        buffer: Received text not yet split into complete lines
        accumulated: Content gathered from partial events and plain text lines
    """

    buffer: str = ""
    accumulated: str = ""


def feed(state: StreamState, chunk: str) -> StreamState:
    """Append newly received text to the buffer."""
    return replace(state, buffer=state.buffer + chunk)


def flush(state: StreamState) -> StreamState:
    """Terminate a trailing partial line so it can be decoded at EOF."""
    if state.buffer and not state.buffer.endswith("\n"):
        return replace(state, buffer=state.buffer + "\n")
    return state


def has_complete_line(state: StreamState) -> bool:
    return "\n" in state.buffer


def combine_content(accumulated: str, content: str) -> str:
    """Merge accumulated partial text with a terminal event's content.

    A terminal event that repeats the accumulated text, alone or extended,
    replaces it. Any other content is appended.
    """
    if not content:
        return accumulated
    if content.startswith(accumulated):
        return content
    return accumulated + content


def next_response(
    state: StreamState, decode_event: EventDecoder
) -> tuple[StreamState, ProviderResponse | ProviderStateError | None]:
    """Consume complete lines until one produces a response.

    Lines that are not a JSON object are accumulated as literal text. Ignored
    events are dropped. Lines after the one that produced a response remain
    buffered.

    Args:
        state: Current decoder state
        decode_event: Provider-specific event mapping

    Returns:
        (new_state, outcome). The outcome is a ProviderResponse, a
        ProviderStateError for an error event or an event the decoder
        failed on (its line is consumed and the accumulated content
        discarded), or None if the buffer ran out of complete lines first.
    """
    buffer = state.buffer
    accumulated = state.accumulated

    while "\n" in buffer:
        line, buffer = buffer.split("\n", 1)
        line = line.strip()
        if not line:
            continue

        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            event = None
        if not isinstance(event, dict):
            accumulated += line + "\n"
            continue

        try:
            decoded = decode_event(event)
        except ProviderStateError as e:
            return StreamState(buffer=buffer, accumulated=""), e
        except Exception as e:
            error = ProviderStateError(f"Failed to decode provider event: {e}")
            return StreamState(buffer=buffer, accumulated=""), error
        if decoded is None:
            continue

        if decoded.kind == "partial":
            accumulated += decoded.content
            return (
                StreamState(buffer=buffer, accumulated=accumulated),
                ProviderResponse(
                    content=decoded.content, is_complete=False, structured=event
                ),
            )

        return (
            StreamState(buffer=buffer, accumulated=""),
            ProviderResponse(
                content=combine_content(accumulated, decoded.content),
                is_complete=True,
                structured=event,
            ),
        )

    return StreamState(buffer=buffer, accumulated=accumulated), None

