"""Tests for ProviderProcess against real child processes.

Each test runs the current Python interpreter as a stand-in provider CLI.
"""

import asyncio
import sys

import pytest

from lisa.errors import ErrorCategory, classify_error
from lisa.providers.base import (
    ProviderConfig,
    ProviderMessage,
    ProviderNotAvailableError,
    ProviderSpec,
    ProviderStateError,
    StreamEvent,
)
from lisa.providers.process import ProviderProcess

pytestmark = pytest.mark.subprocess

ECHO_SCRIPT = """
import json, sys
prompt = sys.argv[1]
print(json.dumps({"type": "delta", "text": "You said: "}), flush=True)
print(json.dumps({"type": "done", "text": prompt}), flush=True)
"""

PERSISTENT_SCRIPT = """
import json, sys
while True:
    line = sys.stdin.readline()
    if not line:
        break
    print(json.dumps({"type": "done", "text": line.strip().upper()}), flush=True)
"""

PLAIN_TEXT_SCRIPT = "print('just text')"
EXIT_SCRIPT = "import sys; sys.exit(3)"
ERROR_SCRIPT = 'print(\'{"type": "error", "message": "boom"}\', flush=True)'
SLEEP_SCRIPT = "import time; time.sleep(30)"
UNDECODABLE_SCRIPT = (
    "import time; print('{\"type\": \"odd\"}', flush=True); time.sleep(30)"
)


def decode_test_event(event):
    kind = event.get("type")
    if kind == "delta":
        return StreamEvent.partial(event.get("text"))
    if kind == "done":
        return StreamEvent.terminal(event.get("text"))
    if kind == "error":
        raise ProviderStateError(f"Test error: {event.get('message')}")
    if kind == "odd":
        raise TypeError("sequence item 0: expected str instance, int found")
    return None


def make_provider(
    script: str,
    session: str = "per_turn",
    response_timeout: float = 10.0,
    **spec_options,
) -> ProviderProcess:
    """Build a provider whose CLI is ``python -c script [prompt]``."""

    def build_args(prompt, initial):
        args = ["-c", script]
        if prompt is not None:
            args.append(prompt)
        return args

    spec = ProviderSpec(
        name="test",
        display_name="Test",
        command=sys.executable,
        session=session,
        decode_event=decode_test_event,
        build_args=build_args,
        **spec_options,
    )
    return ProviderProcess(spec, response_timeout=response_timeout)


class TestPerTurnSession:
    """Tests for providers that start a process per turn."""

    @pytest.mark.asyncio
    async def test_partial_then_terminal(self):
        """A turn yields its partial deltas, then the combined text."""
        provider = make_provider(ECHO_SCRIPT)
        try:
            await provider.spawn("hello")

            partial = await provider.receive()
            terminal = await provider.receive()

            assert partial.is_complete is False
            assert partial.content == "You said: "
            assert terminal.is_complete is True
            assert terminal.content == "You said: hello"
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_send_starts_new_process(self):
        """Each send() runs the CLI again with the new prompt."""
        provider = make_provider(ECHO_SCRIPT)
        try:
            await provider.spawn("first")
            await provider.receive()
            await provider.receive()

            await provider.send(ProviderMessage("second"))
            await provider.receive()
            terminal = await provider.receive()

            assert terminal.content == "You said: second"
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_clean_exit_completes_plain_text(self):
        """Plain output followed by exit 0 is one complete response."""
        provider = make_provider(PLAIN_TEXT_SCRIPT)
        try:
            await provider.spawn("ignored")
            response = await provider.receive()

            assert response.is_complete is True
            assert response.content.strip() == "just text"
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_nonzero_exit_rejects(self):
        """An abnormal exit fails receive() with the exit code."""
        provider = make_provider(EXIT_SCRIPT)
        try:
            await provider.spawn("ignored")
            with pytest.raises(ProviderStateError) as exc_info:
                await provider.receive()

            assert str(exc_info.value) == "Process exited with code 3, signal None"
            error = classify_error(exc_info.value)
            assert error.category is ErrorCategory.PROCESS
            assert error.exit_code == 3
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_error_event_rejects(self):
        provider = make_provider(ERROR_SCRIPT)
        try:
            await provider.spawn("ignored")
            with pytest.raises(ProviderStateError, match="Test error: boom"):
                await provider.receive()
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_decoder_failure_rejects_promptly(self):
        """A decoder failure rejects receive() before the response timeout."""
        provider = make_provider(UNDECODABLE_SCRIPT, response_timeout=20.0)
        try:
            await provider.spawn("ignored")
            with pytest.raises(ProviderStateError, match="Failed to decode"):
                await asyncio.wait_for(provider.receive(), timeout=10.0)
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_receive_after_exit_settled(self):
        """Once the exit has been reported, receive() fails fast."""
        provider = make_provider(PLAIN_TEXT_SCRIPT)
        try:
            await provider.spawn("ignored")
            await provider.receive()
            with pytest.raises(ProviderStateError, match="not running"):
                await provider.receive()
        finally:
            await provider.cleanup()


class TestPersistentSession:
    """Tests for providers that keep one process for the interview."""

    @pytest.mark.asyncio
    async def test_turns_written_to_stdin(self):
        provider = make_provider(PERSISTENT_SCRIPT, session="persistent")
        try:
            await provider.spawn("hello")
            first = await provider.receive()

            await provider.send(ProviderMessage("again"))
            second = await provider.receive()

            assert first.content == "HELLO"
            assert second.content == "AGAIN"
            assert provider.is_running()
        finally:
            await provider.cleanup()

        assert not provider.is_running()

    @pytest.mark.asyncio
    async def test_send_before_spawn(self):
        provider = make_provider(PERSISTENT_SCRIPT, session="persistent")
        with pytest.raises(ProviderStateError, match="Provider is not running"):
            await provider.send(ProviderMessage("hi"))


class TestLifecycle:
    """Tests for timeouts, cleanup and misuse."""

    @pytest.mark.asyncio
    async def test_timeout(self):
        """A silent provider times out with a classifiable message."""
        provider = make_provider(SLEEP_SCRIPT, response_timeout=0.2)
        try:
            await provider.spawn("ignored")
            with pytest.raises(ProviderStateError) as exc_info:
                await provider.receive()
        finally:
            await provider.cleanup()

        assert str(exc_info.value) == "Timeout waiting for Test response after 200ms"
        error = classify_error(exc_info.value)
        assert error.category is ErrorCategory.TIMEOUT
        assert error.timeout_ms == 200

    @pytest.mark.asyncio
    async def test_cleanup_rejects_pending_receive(self):
        """cleanup() fails an in-flight receive() and stops the process."""
        provider = make_provider(SLEEP_SCRIPT)
        await provider.spawn("ignored")
        pending = asyncio.create_task(provider.receive())
        await asyncio.sleep(0.05)

        await provider.cleanup()

        with pytest.raises(ProviderStateError, match="Provider cleanup initiated"):
            await pending
        assert not provider.is_running()

    @pytest.mark.asyncio
    async def test_concurrent_receive_rejected(self):
        provider = make_provider(SLEEP_SCRIPT)
        await provider.spawn("ignored")
        pending = asyncio.create_task(provider.receive())
        await asyncio.sleep(0.05)
        try:
            with pytest.raises(ProviderStateError, match="already pending"):
                await provider.receive()
        finally:
            await provider.cleanup()
            with pytest.raises(ProviderStateError):
                await pending

    @pytest.mark.asyncio
    async def test_spawn_twice(self):
        provider = make_provider(SLEEP_SCRIPT)
        try:
            await provider.spawn("ignored")
            with pytest.raises(ProviderStateError, match="already running"):
                await provider.spawn("again")
        finally:
            await provider.cleanup()

    @pytest.mark.asyncio
    async def test_receive_before_spawn(self):
        provider = make_provider(ECHO_SCRIPT)
        with pytest.raises(ProviderStateError, match="Provider is not running"):
            await provider.receive()

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self):
        provider = make_provider(ECHO_SCRIPT)
        await provider.cleanup()
        await provider.cleanup()
        assert not provider.is_running()

    @pytest.mark.asyncio
    async def test_extra_args_and_env_from_config(self):
        """Config args are appended and env is layered over os.environ."""
        script = "import os, sys; print(sys.argv[1:], os.environ['LISA_TEST_VALUE'])"
        spec = ProviderSpec(
            name="test",
            display_name="Test",
            command=sys.executable,
            session="per_turn",
            decode_event=decode_test_event,
            build_args=lambda prompt, initial: ["-c", script, prompt or ""],
        )
        provider = ProviderProcess(
            spec, ProviderConfig(args=("--extra",), env={"LISA_TEST_VALUE": "42"})
        )
        try:
            await provider.spawn("hi")
            response = await provider.receive()
        finally:
            await provider.cleanup()

        assert response.content.strip() == "['hi', '--extra'] 42"


class TestAvailability:
    """Tests for is_available() and get_version()."""

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        provider = make_provider(ECHO_SCRIPT)
        provider.config = ProviderConfig(command="lisa-no-such-binary-xyz")

        assert await provider.is_available() is False
        with pytest.raises(ProviderNotAvailableError) as exc_info:
            await provider.spawn("hi")
        assert 'CLI tool "lisa-no-such-binary-xyz"' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_installed_binary(self):
        assert await make_provider(ECHO_SCRIPT).is_available() is True

    @pytest.mark.asyncio
    async def test_availability_marker(self):
        """The probe output must contain the marker, case-insensitively."""
        found = make_provider(
            ECHO_SCRIPT,
            availability_probe=("-c", "print('GitHub Copilot CLI')"),
            availability_marker="copilot",
        )
        missing = make_provider(
            ECHO_SCRIPT,
            availability_probe=("-c", "print('unknown command')"),
            availability_marker="copilot",
        )

        assert await found.is_available() is True
        assert await missing.is_available() is False

    @pytest.mark.asyncio
    async def test_version_default_probe(self):
        version = await make_provider(ECHO_SCRIPT).get_version()
        assert version.startswith("Python")

    @pytest.mark.asyncio
    async def test_version_falls_back_and_prefixes(self):
        """Failing probes are skipped; a prefix keeps only the first line."""
        provider = make_provider(
            ECHO_SCRIPT,
            version_probes=(
                (("-c", "import sys; sys.exit(1)"), ""),
                (("-c", "print('2.40.1'); print('extra')"), "gh "),
            ),
        )
        assert await provider.get_version() == "gh 2.40.1"

    @pytest.mark.asyncio
    async def test_version_missing_binary(self):
        provider = make_provider(ECHO_SCRIPT)
        provider.config = ProviderConfig(command="lisa-no-such-binary-xyz")
        assert await provider.get_version() is None
