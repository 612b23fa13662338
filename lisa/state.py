"""Interview state and its on-disk checkpoint.

InterviewState is an immutable snapshot of an interview. The mutators in this
module return new states, leaving persistence to the caller. StateStore writes
snapshots to ``<base>/lisa/state.yaml`` so an interrupted interview can resume.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml

logger = structlog.get_logger(__name__)

STATE_VERSION = 1
STATE_DIR_NAME = "lisa"
STATE_FILE_NAME = "state.yaml"

Phase = Literal["exploring", "questioning", "generating"]
PHASES: tuple[Phase, ...] = ("exploring", "questioning", "generating")

STATE_FILE_HEADER = (
    "# Lisa interview state\n"
    "# This file is managed automatically. Run 'lisa --resume' to continue.\n"
)


class StateFileError(Exception):
    """Raised when the state file cannot be read, parsed or validated."""

    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class InterviewQA:
    """One question/answer exchange in the interview history."""

    question: str
    answer: str
    timestamp: str = field(default_factory=_now)


@dataclass(frozen=True)
class InterviewState:
    """Snapshot of an interview in progress.

    Never mutated in place: use add_to_history(), update_phase() and
    update_ai_context() to derive a new state.

    Attributes:
        feature: Feature description being specified
        provider: Name of the AI provider conducting the interview
        first_principles: Whether first-principles questioning is enabled
        context_files: Reference files supplied by the user
        started_at: ISO timestamp when the interview began
        updated_at: ISO timestamp of the last save
        phase: Coarse interview phase, only ever moves forward
        history: Ordered question/answer pairs
        ai_context: Accumulated AI response text
        version: State schema version, always 1
    """

    feature: str
    provider: str
    first_principles: bool = False
    context_files: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    phase: Phase = "exploring"
    history: list[InterviewQA] = field(default_factory=list)
    ai_context: str = ""
    version: int = STATE_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk camelCase document."""
        return {
            "version": self.version,
            "feature": self.feature,
            "provider": self.provider,
            "firstPrinciples": self.first_principles,
            "contextFiles": list(self.context_files),
            "startedAt": self.started_at,
            "updatedAt": self.updated_at,
            "phase": self.phase,
            "history": [
                {"question": qa.question, "answer": qa.answer, "timestamp": qa.timestamp}
                for qa in self.history
            ],
            "aiContext": self.ai_context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InterviewState":
        """Build from a document that already passed validate_state()."""
        return cls(
            version=data["version"],
            feature=data["feature"],
            provider=data["provider"],
            first_principles=data["firstPrinciples"],
            context_files=list(data["contextFiles"]),
            started_at=data["startedAt"],
            updated_at=data["updatedAt"],
            phase=data["phase"],
            history=[
                InterviewQA(
                    question=qa["question"],
                    answer=qa["answer"],
                    timestamp=qa["timestamp"],
                )
                for qa in data["history"]
            ],
            ai_context=data["aiContext"],
        )


def create_state(
    feature: str,
    provider: str,
    first_principles: bool = False,
    context_files: list[str] | None = None,
) -> InterviewState:
    """Create the initial state for a new interview."""
    now = _now()
    return InterviewState(
        feature=feature,
        provider=provider,
        first_principles=first_principles,
        context_files=list(context_files or []),
        started_at=now,
        updated_at=now,
    )


def add_to_history(state: InterviewState, question: str, answer: str) -> InterviewState:
    """Return a new state with the question/answer pair appended."""
    return replace(
        state, history=[*state.history, InterviewQA(question=question, answer=answer)]
    )


def update_phase(state: InterviewState, phase: Phase) -> InterviewState:
    """Return a new state in the given phase.

    Raises:
        ValueError: If the phase is unknown or earlier than the current one
    """
    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}")
    if PHASES.index(phase) < PHASES.index(state.phase):
        raise ValueError(f"Cannot move phase backward from {state.phase} to {phase}")
    return replace(state, phase=phase)


def update_ai_context(state: InterviewState, context: str) -> InterviewState:
    """Return a new state with the accumulated AI context replaced."""
    return replace(state, ai_context=context)


def validate_state(data: Any) -> list[str]:
    """Check a raw state document against the schema.

    Returns:
        List of "field: problem" strings, empty when valid
    """
    if not isinstance(data, dict):
        return ["root: state must be a mapping"]

    errors: list[str] = []
    if data.get("version") != STATE_VERSION:
        errors.append(f"version: must be {STATE_VERSION}")
    for key in ("feature", "provider", "startedAt", "updatedAt", "aiContext"):
        if not isinstance(data.get(key), str):
            errors.append(f"{key}: must be a string")
    if isinstance(data.get("feature"), str) and not data["feature"].strip():
        errors.append("feature: must not be empty")
    if not isinstance(data.get("firstPrinciples"), bool):
        errors.append("firstPrinciples: must be a boolean")
    context_files = data.get("contextFiles")
    if not isinstance(context_files, list) or not all(
        isinstance(path, str) for path in context_files
    ):
        errors.append("contextFiles: must be a list of strings")
    if data.get("phase") not in PHASES:
        errors.append(f"phase: must be one of {', '.join(PHASES)}")

    history = data.get("history")
    if not isinstance(history, list):
        errors.append("history: must be a list")
    else:
        for index, qa in enumerate(history):
            if not isinstance(qa, dict) or not all(
                isinstance(qa.get(key), str) for key in ("question", "answer", "timestamp")
            ):
                errors.append(
                    f"history[{index}]: must have string question, answer and timestamp"
                )
    return errors


class StateStore:
    """Reads and writes the interview checkpoint under a base directory.

    The file is single-writer, last write wins. Two stores pointed at the same
    base directory will overwrite each other.
    """

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)

    @property
    def path(self) -> Path:
        return self.base_dir / STATE_DIR_NAME / STATE_FILE_NAME

    async def save(self, state: InterviewState) -> Path:
        """Validate and write the state, stamping updatedAt.

        Returns:
            Path of the written state file

        Raises:
            StateFileError: If the state fails validation
            OSError: If the file cannot be written
        """
        data = replace(state, updated_at=_now()).to_dict()
        errors = validate_state(data)
        if errors:
            raise StateFileError(f"Invalid state: {'; '.join(errors)}")

        await asyncio.to_thread(self._write, data)
        logger.debug("State saved", path=str(self.path), phase=state.phase)
        return self.path

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        body = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, width=120)
        self.path.write_text(STATE_FILE_HEADER + body, encoding="utf-8")

    async def load(self) -> InterviewState | None:
        """Load the saved state.

        Returns:
            The saved InterviewState, or None if no state file exists

        Raises:
            StateFileError: If the file is not valid YAML or fails validation
        """
        if not self.path.exists():
            return None

        text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise StateFileError(
                f"Corrupted state file (invalid YAML): {self.path}"
            ) from e

        errors = validate_state(data)
        if errors:
            raise StateFileError(
                f"Corrupted state file (invalid data): {'; '.join(errors)}"
            )
        return InterviewState.from_dict(data)

    def exists(self) -> bool:
        return self.path.exists()

    async def clear(self) -> None:
        """Delete the state file if present."""
        await asyncio.to_thread(self.path.unlink, missing_ok=True)
        logger.debug("State cleared", path=str(self.path))
