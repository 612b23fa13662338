"""Error taxonomy and classification for Lisa interviews.

Every failure that leaves the interview core is an InterviewError tagged with
an ErrorCategory. Raw exceptions from provider I/O and the filesystem are
turned into InterviewErrors by classify_error(), which inspects the message
text first and the exception type second.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Categories of interview failures."""

    NETWORK = "network"
    PROVIDER = "provider"
    PROCESS = "process"
    STATE = "state"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    USER_CANCELLED = "user_cancelled"
    UNKNOWN = "unknown"


RESUME_HINT = 'Your progress has been saved. Run "lisa --resume" to continue where you left off.'
NOT_RECOVERABLE_HINT = (
    "This error cannot be recovered from automatically. Please start a new interview."
)

USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "A network error occurred. Please check your internet connection.",
    ErrorCategory.PROVIDER: "The AI provider encountered an error. Please try again.",
    ErrorCategory.PROCESS: "The AI process terminated unexpectedly.",
    ErrorCategory.STATE: "Failed to save or load interview state.",
    ErrorCategory.VALIDATION: "Invalid data received.",
    ErrorCategory.TIMEOUT: "The operation timed out. Please try again.",
    ErrorCategory.USER_CANCELLED: "Interview was cancelled.",
    ErrorCategory.UNKNOWN: "An unexpected error occurred.",
}

RECOVERY_INSTRUCTIONS: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: RESUME_HINT,
    ErrorCategory.PROVIDER: RESUME_HINT,
    ErrorCategory.PROCESS: RESUME_HINT,
    ErrorCategory.STATE: "Please check disk space and file permissions, then try again.",
    ErrorCategory.VALIDATION: "Please check your input and try again.",
    ErrorCategory.TIMEOUT: RESUME_HINT,
    ErrorCategory.USER_CANCELLED: RESUME_HINT,
    ErrorCategory.UNKNOWN: (
        'Your progress may have been saved. Run "lisa --resume" to attempt to continue.'
    ),
}


class InterviewError(Exception):
    """A categorized interview failure.

    Category-specific data lives in ``details``: ``exit_code`` and ``signal``
    for process errors, ``timeout_ms`` for timeouts. Use the named
    constructors rather than passing details by hand.

    Attributes:
        message: Raw error text
        category: Error category
        recoverable: Whether resuming the interview can succeed
        cause: Original exception, if any
        context: Optional free-form context (e.g. provider name)
        details: Category-specific fields
        timestamp: When the error was created (UTC)
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        *,
        recoverable: bool | None = None,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.recoverable = (
            category is not ErrorCategory.STATE if recoverable is None else recoverable
        )
        self.cause = cause
        self.context = context or {}
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    @classmethod
    def network(cls, message: str, cause: BaseException | None = None) -> "InterviewError":
        return cls(message, ErrorCategory.NETWORK, cause=cause)

    @classmethod
    def provider(
        cls,
        message: str,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> "InterviewError":
        return cls(message, ErrorCategory.PROVIDER, cause=cause, context=context)

    @classmethod
    def process(
        cls,
        message: str,
        exit_code: int | None = None,
        signal: str | None = None,
        cause: BaseException | None = None,
    ) -> "InterviewError":
        details = {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        if signal is not None:
            details["signal"] = signal
        return cls(message, ErrorCategory.PROCESS, cause=cause, details=details)

    @classmethod
    def state(cls, message: str, cause: BaseException | None = None) -> "InterviewError":
        return cls(message, ErrorCategory.STATE, cause=cause)

    @classmethod
    def validation(
        cls,
        message: str,
        cause: BaseException | None = None,
        recoverable: bool = True,
    ) -> "InterviewError":
        return cls(
            message, ErrorCategory.VALIDATION, cause=cause, recoverable=recoverable
        )

    @classmethod
    def timeout(
        cls,
        message: str,
        timeout_ms: int | None = None,
        cause: BaseException | None = None,
    ) -> "InterviewError":
        details = {"timeout_ms": timeout_ms} if timeout_ms is not None else {}
        return cls(message, ErrorCategory.TIMEOUT, cause=cause, details=details)

    @classmethod
    def user_cancelled(
        cls, message: str = "Interview cancelled by user"
    ) -> "InterviewError":
        return cls(message, ErrorCategory.USER_CANCELLED)

    @classmethod
    def unknown(cls, message: str, cause: BaseException | None = None) -> "InterviewError":
        return cls(message, ErrorCategory.UNKNOWN, cause=cause)

    @property
    def exit_code(self) -> int | None:
        return self.details.get("exit_code")

    @property
    def signal(self) -> str | None:
        return self.details.get("signal")

    @property
    def timeout_ms(self) -> int | None:
        return self.details.get("timeout_ms")

    def get_user_message(self) -> str:
        """Category-specific explanation for the user."""
        return USER_MESSAGES[self.category]

    def get_recovery_instructions(self) -> str:
        """What the user should do next."""
        if not self.recoverable:
            return NOT_RECOVERABLE_HINT
        return RECOVERY_INSTRUCTIONS[self.category]

    def format(self) -> str:
        """Full user-facing error text."""
        return "\n".join(
            [
                f"Error: {self.message}",
                "",
                self.get_user_message(),
                "",
                self.get_recovery_instructions(),
            ]
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "details": self.details,
        }


# Keyword sets, checked in this order against the lower-cased message
NETWORK_KEYWORDS = (
    "enotfound",
    "econnrefused",
    "econnreset",
    "etimedout",
    "network",
    "dns",
    "connection refused",
    "connection reset",
    "name or service not known",
)
TIMEOUT_KEYWORDS = ("timeout", "timed out")
PROCESS_KEYWORDS = ("sigterm", "sigkill", "process", "spawn", "exit code", "exited")
STATE_KEYWORDS = (
    "state",
    "eacces",
    "enoent",
    "corrupted",
    "permission denied",
    "no such file",
)
PROVIDER_KEYWORDS = (
    "api",
    "rate limit",
    "quota",
    "authentication",
    "unauthorized",
    "provider",
)

_TIMEOUT_MS_PATTERN = re.compile(r"(\d+)\s*ms")
_EXIT_CODE_PATTERN = re.compile(r"exit(?:ed with)? code (-?\d+)")
_SIGNAL_PATTERN = re.compile(r"\b(sig(?:term|kill|int|hup|quit|abrt|segv|pipe))\b")


def _matches(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def _classify_by_type(error: BaseException) -> InterviewError | None:
    """Fallback for exceptions whose message carries no keyword."""
    message = str(error) or type(error).__name__
    if isinstance(error, ConnectionError):
        return InterviewError.network(message, cause=error)
    if isinstance(error, TimeoutError):
        return InterviewError.timeout(message, cause=error)
    if isinstance(error, (PermissionError, FileNotFoundError)):
        return InterviewError.state(message, cause=error)
    return None


def classify_error(error: object) -> InterviewError:
    """Map any raised value onto a categorized InterviewError.

    Already-classified errors are returned unchanged, so classification is
    idempotent.

    Args:
        error: The raised exception (or any other value)

    Returns:
        The classified InterviewError
    """
    if isinstance(error, InterviewError):
        return error

    if not isinstance(error, BaseException):
        return InterviewError.unknown(str(error))

    message = str(error)
    text = message.lower()

    if _matches(text, NETWORK_KEYWORDS):
        return InterviewError.network(message, cause=error)

    if _matches(text, TIMEOUT_KEYWORDS):
        match = _TIMEOUT_MS_PATTERN.search(text)
        return InterviewError.timeout(
            message, timeout_ms=int(match.group(1)) if match else None, cause=error
        )

    if _matches(text, PROCESS_KEYWORDS):
        code_match = _EXIT_CODE_PATTERN.search(text)
        signal_match = _SIGNAL_PATTERN.search(text)
        return InterviewError.process(
            message,
            exit_code=int(code_match.group(1)) if code_match else None,
            signal=signal_match.group(1).upper() if signal_match else None,
            cause=error,
        )

    if _matches(text, STATE_KEYWORDS):
        return InterviewError.state(message, cause=error)

    if _matches(text, PROVIDER_KEYWORDS):
        return InterviewError.provider(message, cause=error)

    by_type = _classify_by_type(error)
    if by_type is not None:
        return by_type

    return InterviewError.unknown(message or type(error).__name__, cause=error)


def format_error_for_user(error: object) -> str:
    """Classify and format any error for display."""
    return classify_error(error).format()


def is_recoverable_error(error: object) -> bool:
    return classify_error(error).recoverable


def get_error_category(error: object) -> ErrorCategory:
    return classify_error(error).category
