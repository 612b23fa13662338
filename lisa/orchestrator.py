"""Interview orchestration.

InterviewOrchestrator drives the conversation with one provider: it builds
the system prompt, sends turns, extracts structured blocks from responses,
updates the interview state and checkpoints it around every provider call.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from opentelemetry import trace

from lisa.errors import InterviewError, classify_error
from lisa.models import Completion
from lisa.protocol import (
    ParsedResponse,
    find_completion_data,
    generate_system_prompt,
    parse_ai_response,
)
from lisa.providers.base import (
    AIProvider,
    ProviderConfig,
    ProviderMessage,
    ProviderResponse,
)
from lisa.providers.registry import ProviderRegistry
from lisa.recovery import RetryConfig, try_save_state, with_retry
from lisa.state import (
    InterviewState,
    Phase,
    StateStore,
    add_to_history,
    create_state,
    update_ai_context,
    update_phase,
)
from lisa.telemetry import InterviewMetrics

logger = structlog.get_logger(__name__)

INITIAL_QUESTION = "Initial question"

OrchestratorStatus = Literal["uninitialized", "questioning", "generating", "completed"]
EventType = Literal["phase_change", "ai_response", "state_saved", "error"]


@dataclass
class InterviewConfig:
    """What to interview about and with which provider.

    Attributes:
        feature: Feature description
        provider: Registered provider name
        provider_config: Overrides for the provider process
        first_principles: Start by questioning the feature's assumptions
        context_files: Paths of reference files (recorded in state)
        codebase_summary: Optional summary of the codebase for the prompt
        context_content: Optional formatted reference-file text for the prompt
    """

    feature: str
    provider: str = "claude"
    provider_config: ProviderConfig | None = None
    first_principles: bool = False
    context_files: list[str] = field(default_factory=list)
    codebase_summary: str | None = None
    context_content: str | None = None


@dataclass
class OrchestratorEvent:
    """Notification sent to subscribers."""

    type: EventType
    phase: Phase | None = None
    response: ParsedResponse | None = None
    path: str | None = None
    error: InterviewError | None = None


EventHandler = Callable[[OrchestratorEvent], None]


@dataclass
class TurnResult:
    """Outcome of one turn."""

    response: ParsedResponse
    state: InterviewState

    @property
    def is_complete(self) -> bool:
        return self.response.is_complete


@dataclass
class CompletionResult:
    """Outcome of complete(). Never raised, always returned."""

    success: bool
    state: InterviewState
    completion: Completion | None = None
    error: str | None = None

    @property
    def slug(self) -> str | None:
        return self.completion.slug if self.completion else None


class InterviewOrchestrator:
    """Runs one interview against one provider.

    Turns are strictly sequential: callers must await each turn before
    starting the next.

    Usage:
        orchestrator = InterviewOrchestrator(config, registry, store)
        turn = await orchestrator.initialize()
        while not turn.is_complete:
            turn = await orchestrator.send_user_response(answer)
        result = await orchestrator.complete()
        await orchestrator.cleanup()
    """

    def __init__(
        self,
        config: InterviewConfig,
        registry: ProviderRegistry,
        store: StateStore,
        state: InterviewState | None = None,
        retry: RetryConfig | None = None,
        tracer: trace.Tracer | None = None,
        metrics: InterviewMetrics | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Interview configuration
            registry: Provider registry used to create the provider
            store: Checkpoint store
            state: Existing state to resume, or None for a new interview
            retry: Retry policy for starting the provider, or None for one attempt
            tracer: OpenTelemetry tracer for turn spans
            metrics: Metric instruments to record into

        Raises:
            ProviderNotFoundError: If the configured provider is not registered
        """
        self.config = config
        self.store = store
        self.provider: AIProvider = registry.get(config.provider, config.provider_config)
        self.state = state or create_state(
            feature=config.feature,
            provider=config.provider,
            first_principles=config.first_principles,
            context_files=config.context_files,
        )
        self.retry = retry
        self.tracer = tracer or trace.get_tracer(__name__)
        self.metrics = metrics

        self.status: OrchestratorStatus = "uninitialized"
        self._initialized = False
        self._handlers: list[EventHandler] = []
        self._completion: Completion | None = None
        self._last_question: str | None = None

    def on_event(self, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to events. Returns a function that unsubscribes."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _emit(self, event: OrchestratorEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.debug("Event handler failed", event_type=event.type, error=str(e))

    async def _save(self) -> None:
        """Persist state; failures propagate to the turn."""
        path = await self.store.save(self.state)
        self._emit(OrchestratorEvent(type="state_saved", path=str(path)))

    async def _checkpoint(self) -> None:
        """Persist a recovery checkpoint; failures are only logged."""
        result = await try_save_state(self.store, self.state)
        if result.success and result.path is not None:
            self._emit(OrchestratorEvent(type="state_saved", path=str(result.path)))

    def _fail(self, error: Exception) -> InterviewError:
        interview_error = classify_error(error)
        logger.error(
            "Interview turn failed",
            provider=self.provider.name,
            category=interview_error.category.value,
            error=interview_error.message,
        )
        if self.metrics is not None:
            self.metrics.errors_counter.add(
                1, {"category": interview_error.category.value}
            )
        self._emit(OrchestratorEvent(type="error", error=interview_error))
        return interview_error

    def _advance(self, phase: Phase) -> None:
        if self.state.phase == phase:
            return
        self.state = update_phase(self.state, phase)
        self._emit(OrchestratorEvent(type="phase_change", phase=phase))

    async def _spawn(self, system_prompt: str) -> None:
        # A failed attempt may leave a half-started process behind
        await self.provider.cleanup()
        await self.provider.spawn(system_prompt)

    def _on_retry(self, attempt: int, error: InterviewError, delay: float) -> None:
        logger.warning(
            "Retrying provider start",
            provider=self.provider.name,
            attempt=attempt,
            delay=delay,
            category=error.category.value,
        )
        if self.metrics is not None:
            self.metrics.retries_counter.add(1, {"provider": self.provider.name})

    async def _receive_turn(self) -> ProviderResponse:
        """Receive until the provider sends its terminal response."""
        while True:
            response = await self.provider.receive()
            if response.is_complete:
                return response
            logger.debug(
                "Partial response",
                provider=self.provider.name,
                chars=len(response.content),
            )

    def _record_response(self, parsed: ParsedResponse) -> None:
        self._emit(OrchestratorEvent(type="ai_response", response=parsed))

        if parsed.text:
            context = self.state.ai_context
            self.state = update_ai_context(
                self.state, f"{context}\n\n{parsed.text}" if context else parsed.text
            )

        if parsed.question is not None:
            self._last_question = parsed.question.question
        elif parsed.text:
            self._last_question = parsed.text

        if parsed.completion is not None:
            self._completion = parsed.completion
            self._advance("generating")
            self.status = "generating"

    async def initialize(self) -> TurnResult:
        """Start the provider and return its first response.

        Raises:
            InterviewError: If already initialized or any step fails
        """
        if self._initialized:
            await self._checkpoint()
            raise InterviewError.validation(
                "Orchestrator already initialized", recoverable=False
            )

        with self.tracer.start_as_current_span("lisa.initialize") as span:
            span.set_attribute("lisa.provider", self.provider.name)
            started = time.monotonic()
            system_prompt = generate_system_prompt(
                feature=self.config.feature,
                first_principles=self.config.first_principles,
                codebase_summary=self.config.codebase_summary,
                context_content=self.config.context_content,
                history=self.state.history,
            )

            await self._checkpoint()
            try:
                if self.retry is not None:
                    await with_retry(
                        lambda: self._spawn(system_prompt),
                        config=self.retry,
                        on_retry=self._on_retry,
                    )
                else:
                    await self.provider.spawn(system_prompt)
                self._initialized = True
                logger.info(
                    "Interview started",
                    provider=self.provider.name,
                    feature=self.config.feature,
                )

                if self.state.phase == "exploring":
                    self._advance("questioning")
                if self.status == "uninitialized":
                    self.status = "questioning"
                await self._save()

                await self._checkpoint()
                response = await self._receive_turn()
                parsed = parse_ai_response(response)
                self._record_response(parsed)
                await self._save()
            except Exception as e:
                await self._checkpoint()
                span.set_attribute("lisa.error", str(e))
                interview_error = self._fail(e)
                if interview_error is e:
                    raise
                raise interview_error from e

            self._record_turn(started)
            span.set_attribute("lisa.complete", parsed.is_complete)
            return TurnResult(response=parsed, state=self.state)

    async def send_user_response(self, answer: str) -> TurnResult:
        """Forward the user's answer and return the AI's next response.

        The answer is recorded in history and checkpointed before the provider
        is contacted.

        Raises:
            InterviewError: If not initialized or any step fails
        """
        if not self._initialized:
            raise InterviewError.validation(
                "Orchestrator not initialized. Call initialize() first.",
                recoverable=False,
            )

        with self.tracer.start_as_current_span("lisa.turn") as span:
            span.set_attribute("lisa.provider", self.provider.name)
            span.set_attribute("lisa.turn", len(self.state.history) + 1)
            started = time.monotonic()

            self.state = add_to_history(
                self.state, self._last_question or INITIAL_QUESTION, answer
            )
            await self._checkpoint()

            try:
                await self.provider.send(ProviderMessage(content=answer))
                await self._checkpoint()
                response = await self._receive_turn()
                parsed = parse_ai_response(response)
                self._record_response(parsed)
                await self._save()
            except Exception as e:
                await self._checkpoint()
                span.set_attribute("lisa.error", str(e))
                interview_error = self._fail(e)
                if interview_error is e:
                    raise
                raise interview_error from e

            self._record_turn(started)
            span.set_attribute("lisa.complete", parsed.is_complete)
            return TurnResult(response=parsed, state=self.state)

    def _record_turn(self, started: float) -> None:
        if self.metrics is None:
            return
        attributes = {"provider": self.provider.name}
        self.metrics.turns_counter.add(1, attributes)
        self.metrics.turn_duration.record(time.monotonic() - started, attributes)

    async def complete(self) -> CompletionResult:
        """Return the interview's completion payload. Never raises.

        Uses the completion cached by the last turn, or rescans the whole
        accumulated AI context for a completion block.
        """
        if self._completion is None:
            try:
                data: Any = find_completion_data(self.state.ai_context)
            except json.JSONDecodeError:
                return CompletionResult(
                    success=False,
                    state=self.state,
                    error="Failed to parse completion data",
                )
            if data is None:
                return CompletionResult(
                    success=False, state=self.state, error="No completion data found"
                )
            if not isinstance(data, dict):
                return CompletionResult(
                    success=False,
                    state=self.state,
                    error="Failed to parse completion data",
                )
            self._completion = Completion.from_dict(data)

        self.status = "completed"
        logger.info("Interview complete", slug=self._completion.slug)
        return CompletionResult(
            success=True, state=self.state, completion=self._completion
        )

    async def cleanup(self) -> None:
        """Stop the provider process."""
        await self.provider.cleanup()


def create_orchestrator_from_state(
    state: InterviewState,
    registry: ProviderRegistry,
    store: StateStore,
    provider_config: ProviderConfig | None = None,
    codebase_summary: str | None = None,
    context_content: str | None = None,
    **kwargs: Any,
) -> InterviewOrchestrator:
    """Rebuild an orchestrator around a saved state to resume an interview."""
    config = InterviewConfig(
        feature=state.feature,
        provider=state.provider,
        provider_config=provider_config,
        first_principles=state.first_principles,
        context_files=list(state.context_files),
        codebase_summary=codebase_summary,
        context_content=context_content,
    )
    return InterviewOrchestrator(config, registry, store, state=state, **kwargs)
