"""Generic child-process runner for AI provider CLIs.

ProviderProcess runs any ProviderSpec. It owns the asyncio subprocess, pumps
stdout into the pure stream decoder and hands decoded responses to at most
one pending receive() call at a time.
"""

import asyncio
import codecs
import os
import shutil
import signal as signal_module
from dataclasses import replace

import structlog

from lisa.providers.base import (
    ProviderConfig,
    ProviderMessage,
    ProviderNotAvailableError,
    ProviderResponse,
    ProviderSpec,
    ProviderStateError,
)
from lisa.providers.stream import StreamState, feed, flush, next_response

logger = structlog.get_logger(__name__)

DEFAULT_RESPONSE_TIMEOUT_SECONDS = 300.0
TERMINATE_GRACE_SECONDS = 5.0
PROBE_TIMEOUT_SECONDS = 10.0
READ_CHUNK_SIZE = 4096


def _signal_name(returncode: int) -> str | None:
    if returncode >= 0:
        return None
    try:
        return signal_module.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class ProviderProcess:
    """Runs one provider CLI as a child process.

    Persistent providers keep a single process for the whole interview and
    receive each turn on stdin. Per-turn providers start a new process for
    every turn with the prompt as an argument; the process exiting with code
    0 completes the turn.

    Usage:
        provider = ProviderProcess(CLAUDE_SPEC)
        await provider.spawn(system_prompt)
        response = await provider.receive()
        await provider.send(ProviderMessage("Use OAuth"))
        response = await provider.receive()
        await provider.cleanup()
    """

    def __init__(
        self,
        spec: ProviderSpec,
        config: ProviderConfig | None = None,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
    ):
        """Initialize the provider process.

        Args:
            spec: Provider description (binary, arguments, event vocabulary)
            config: Per-instance overrides for command, arguments and environment
            response_timeout: Seconds receive() waits before failing
        """
        self.spec = spec
        self.config = config or ProviderConfig()
        self.response_timeout = response_timeout

        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task] = []
        self._stream = StreamState()
        self._waiter: asyncio.Future[ProviderResponse] | None = None
        self._returncode: int | None = None
        self._exit_settled = False
        self._eof = False

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def display_name(self) -> str:
        return self.spec.display_name

    @property
    def command(self) -> str:
        return self.config.command or self.spec.command

    def is_running(self) -> bool:
        """True while the child process is alive."""
        return self._process is not None and self._process.returncode is None

    async def _run_probe(self, args: tuple[str, ...]) -> str | None:
        """Run the binary with ``args`` and return stdout, or None on failure."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=PROBE_TIMEOUT_SECONDS
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("Provider probe failed", provider=self.name, error=str(e))
            return None
        if process.returncode != 0:
            return None
        return stdout.decode("utf-8", errors="replace")

    async def is_available(self) -> bool:
        """Check that the CLI binary resolves on PATH. Never raises."""
        if shutil.which(self.command) is None:
            return False
        if self.spec.availability_probe is None:
            return True
        output = await self._run_probe(self.spec.availability_probe)
        if output is None:
            return False
        marker = self.spec.availability_marker
        return marker is None or marker in output.lower()

    async def get_version(self) -> str | None:
        """Best-effort version string, or None."""
        for args, prefix in self.spec.version_probes:
            output = await self._run_probe(args)
            if not output or not output.strip():
                continue
            if prefix:
                return prefix + output.strip().splitlines()[0]
            return output.strip()
        return None

    async def spawn(self, system_prompt: str) -> None:
        """Start the provider with the system prompt.

        Raises:
            ProviderStateError: If the process is already running
            ProviderNotAvailableError: If the binary is not installed
        """
        if self.is_running():
            raise ProviderStateError("Provider is already running")
        if not await self.is_available():
            raise ProviderNotAvailableError(self.name, self.command)

        if self.spec.session == "persistent":
            await self._start(self.spec.build_args(None, True), stdin=True)
            await self._write(system_prompt)
        else:
            await self._start(self.spec.build_args(system_prompt, True), stdin=False)

    async def send(self, message: ProviderMessage) -> None:
        """Send the next turn to the provider.

        Raises:
            ProviderStateError: If a persistent session is not running
            ProviderNotAvailableError: If a per-turn binary is not installed
        """
        if self.spec.session == "persistent":
            if not self.is_running():
                raise ProviderStateError("Provider is not running")
            await self._write(message.content)
            return

        await self.cleanup()
        if not await self.is_available():
            raise ProviderNotAvailableError(self.name, self.command)
        await self._start(self.spec.build_args(message.content, False), stdin=False)

    async def receive(self) -> ProviderResponse:
        """Wait for the next decoded response.

        Responses are partial (is_complete=False) or terminal. Output that
        arrived before this call is decoded first.

        Raises:
            ProviderStateError: If the provider is not running, reported an
                error, exited abnormally, timed out, or was cleaned up
        """
        if self._process is None or self._exit_settled:
            raise ProviderStateError("Provider is not running")
        if self._waiter is not None and not self._waiter.done():
            raise ProviderStateError("A receive is already pending")

        waiter: asyncio.Future[ProviderResponse] = (
            asyncio.get_running_loop().create_future()
        )
        self._waiter = waiter
        self._drain()

        try:
            return await asyncio.wait_for(
                asyncio.shield(waiter), timeout=self.response_timeout
            )
        except asyncio.TimeoutError:
            waiter.cancel()
            timeout_ms = int(self.response_timeout * 1000)
            raise ProviderStateError(
                f"Timeout waiting for {self.display_name} response after {timeout_ms}ms"
            ) from None
        finally:
            if self._waiter is waiter:
                self._waiter = None

    async def cleanup(self) -> None:
        """Stop the process and fail any pending receive. Safe to repeat."""
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_exception(ProviderStateError("Provider cleanup initiated"))
        self._waiter = None

        process = self._process
        if process is not None and process.returncode is None:
            logger.debug("Terminating provider", provider=self.name, pid=process.pid)
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning("Provider ignored SIGTERM, killing", provider=self.name)
                process.kill()
                await process.wait()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks = []
        self._process = None
        self._stream = StreamState()
        self._returncode = None
        self._exit_settled = False
        self._eof = False

    async def _start(self, args: list[str], stdin: bool) -> None:
        full_args = [*args, *self.config.args]
        env = {**os.environ, **self.config.env}

        self._stream = StreamState()
        self._returncode = None
        self._exit_settled = False
        self._eof = False

        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *full_args,
                stdin=asyncio.subprocess.PIPE if stdin else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as e:
            raise ProviderNotAvailableError(self.name, self.command) from e

        self._process = process
        self._tasks = [
            asyncio.create_task(self._pump_stdout(process)),
            asyncio.create_task(self._pump_stderr(process)),
        ]
        logger.info(
            "Provider spawned",
            provider=self.name,
            command=self.command,
            pid=process.pid,
            session=self.spec.session,
        )

    async def _write(self, text: str) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise ProviderStateError("Provider is not running")
        try:
            process.stdin.write(self.spec.encode_input(text).encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ProviderStateError(
                f"Failed to write to {self.display_name} process: {e}"
            ) from e

    async def _pump_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            self._stream = feed(self._stream, decoder.decode(chunk))
            self._drain()

        self._stream = flush(feed(self._stream, decoder.decode(b"", final=True)))
        self._eof = True
        self._returncode = await process.wait()
        logger.debug("Provider exited", provider=self.name, returncode=self._returncode)
        self._drain()

    async def _pump_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        async for raw in process.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            if "error" in line.lower():
                logger.warning("Provider stderr", provider=self.name, line=line)
            else:
                logger.debug("Provider stderr", provider=self.name, line=line)

    def _drain(self) -> None:
        """Hand at most one decoded response to the pending receive()."""
        waiter = self._waiter
        if waiter is None or waiter.done():
            return

        self._stream, outcome = next_response(self._stream, self.spec.decode_event)
        if isinstance(outcome, ProviderResponse):
            waiter.set_result(outcome)
            return
        if isinstance(outcome, ProviderStateError):
            logger.warning(
                "Provider stream error", provider=self.name, error=str(outcome)
            )
            waiter.set_exception(outcome)
            return

        # Buffer exhausted: settle on process exit once all output is decoded
        if not self._eof or self._returncode is None:
            return
        self._exit_settled = True
        code = self._returncode
        if code == 0:
            content = self._stream.accumulated
            self._stream = replace(self._stream, accumulated="")
            waiter.set_result(ProviderResponse(content=content, is_complete=True))
        else:
            waiter.set_exception(
                ProviderStateError(
                    f"Process exited with code {code}, signal {_signal_name(code)}"
                )
            )
