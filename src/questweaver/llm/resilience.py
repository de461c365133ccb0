"""
Error classification, retry with backoff and circuit breaking for LLM calls.

Provider failures arrive as arbitrary exceptions. ErrorHandler classifies them
by message text into a fixed taxonomy (ErrorKind), keeps a bounded history for
statistics, and drives exponential backoff for the retryable kinds.
CircuitBreaker is the independent guard that stops calling a persistently
failing operation until a cooldown has elapsed.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from ..config import CircuitBreakerConfig, RetryConfig
from ..exceptions import AllProvidersUnavailableError, CircuitOpenError, RetryExhaustedError

logger = logging.getLogger("questweaver")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    """Classified kind of an LLM failure."""

    PROVIDER = "provider"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    NETWORK = "network"
    PARSING = "parsing"
    INTERNAL = "internal"


RETRYABLE_KINDS = frozenset({
    ErrorKind.PROVIDER,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK,
    ErrorKind.RATE_LIMIT,
    ErrorKind.PARSING,
})

# Checked in order; first rule whose needle occurs in the lowercased message wins.
_CLASSIFICATION_RULES: list[tuple[tuple[str, ...], ErrorKind, str]] = [
    (("rate limit", "429"), ErrorKind.RATE_LIMIT, "Wait before retrying"),
    (("quota", "billing"), ErrorKind.QUOTA, "Check billing and quota limits"),
    (("timeout", "timed out"), ErrorKind.TIMEOUT, "Reduce request complexity or increase timeout"),
    (("network", "connection"), ErrorKind.NETWORK, "Check network connectivity"),
    (("validation", "invalid"), ErrorKind.VALIDATION, "Check request format and parameters"),
    (("parsing", "json"), ErrorKind.PARSING, "Retry or adjust prompt for better structure"),
    (("provider", "unavailable"), ErrorKind.PROVIDER, "Try again later or use fallback provider"),
    (("500", "502", "503"), ErrorKind.PROVIDER, "Server error - retry after delay"),
]

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.PROVIDER: "The AI service is temporarily unavailable. Please try again in a few moments.",
    ErrorKind.RATE_LIMIT: "Too many requests. Please wait a moment before trying again.",
    ErrorKind.QUOTA: "AI service quota exceeded. Please contact an administrator.",
    ErrorKind.VALIDATION: "The request format is invalid. Please check your input and try again.",
    ErrorKind.TIMEOUT: "The request took too long to process. Please try again with a shorter prompt.",
    ErrorKind.NETWORK: "Network connection issue. Please check your internet connection.",
    ErrorKind.PARSING: "Failed to process the AI response. Please try again.",
}

_DEFAULT_USER_MESSAGE = "An unexpected error occurred. Please try again or contact support."

_RECOVERY_SUGGESTIONS: dict[ErrorKind, list[str]] = {
    ErrorKind.PROVIDER: [
        "Wait a few minutes and try again",
        "Check if other AI features are working",
        "Contact support if the issue persists",
    ],
    ErrorKind.RATE_LIMIT: [
        "Wait before making another request",
        "Reduce the frequency of your requests",
        "Consider upgrading your plan for higher limits",
    ],
    ErrorKind.QUOTA: [
        "Contact an administrator to raise the quota",
        "Check the billing status of the AI provider account",
        "Try again once the quota period resets",
    ],
    ErrorKind.VALIDATION: [
        "Check your input format",
        "Ensure all required fields are provided",
        "Verify that values are within acceptable ranges",
    ],
    ErrorKind.TIMEOUT: [
        "Try with a shorter prompt",
        "Reduce the complexity of your request",
        "Split large requests into smaller ones",
    ],
    ErrorKind.NETWORK: [
        "Check your internet connection",
        "Try again in a few moments",
        "Contact your network administrator if the problem persists",
    ],
}

_DEFAULT_SUGGESTIONS = [
    "Try again in a few moments",
    "Contact support if the error continues",
]


@dataclass
class ErrorRecord:
    """A classified failure.

    Attributes:
        kind: Classified error kind
        message: Original error message
        retryable: Whether the kind is intrinsically retryable
        suggested_action: Short remediation hint for operators
        timestamp: Wall-clock time the error was classified
        error_type: Class name of the original exception
        context: Optional caller-supplied context
    """
    kind: ErrorKind
    message: str
    retryable: bool
    suggested_action: str | None = None
    timestamp: float = field(default_factory=time.time)
    error_type: str = "Exception"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "suggested_action": self.suggested_action,
            "timestamp": self.timestamp,
            "error_type": self.error_type,
        }


@dataclass
class ErrorStats:
    """Aggregated error statistics.

    Attributes:
        total_errors: Errors recorded since the last clear
        errors_by_kind: Count per error kind value
        recent_errors: The ten most recent records
        average_resolution_time: Mean classification time in seconds
        successful_retries: Operations that succeeded after at least one retry
        failed_retries: Operations that gave up
    """
    total_errors: int
    errors_by_kind: dict[str, int]
    recent_errors: list[ErrorRecord]
    average_resolution_time: float
    successful_retries: int
    failed_retries: int


def classify_error(error: BaseException, context: dict[str, Any] | None = None) -> ErrorRecord:
    """Classify an exception into an ErrorRecord by message text.

    A RetryExhaustedError is unwrapped to the record it already carries, so a
    failure is never classified twice with a different message. An
    AllProvidersUnavailableError is unwrapped the same way to the record of
    the last provider failure, so its real kind decides whether to retry.

    Args:
        error: The exception to classify
        context: Optional context stored on the record

    Returns:
        The classified error record
    """
    if isinstance(error, RetryExhaustedError):
        return error.error_record
    if isinstance(error, AllProvidersUnavailableError) and error.error_record is not None:
        return error.error_record

    message = str(error) or error.__class__.__name__
    lowered = message.lower()

    for needles, kind, action in _CLASSIFICATION_RULES:
        if any(needle in lowered for needle in needles):
            return ErrorRecord(
                kind=kind,
                message=message,
                retryable=kind in RETRYABLE_KINDS,
                suggested_action=action,
                error_type=error.__class__.__name__,
                context=context or {},
            )

    return ErrorRecord(
        kind=ErrorKind.INTERNAL,
        message=message,
        retryable=False,
        error_type=error.__class__.__name__,
        context=context or {},
    )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff delay in seconds before retry number ``attempt`` (0-based).

    delay = min(base * factor^attempt + jitter, max_delay), jitter <= 10%.
    """
    exponential = config.base_delay * (config.backoff_factor ** attempt)
    jitter = random.random() * 0.1 * exponential
    return min(exponential + jitter, config.max_delay)


# ---------------------------------------------------------------------------
# Error handler
# ---------------------------------------------------------------------------


class ErrorHandler:
    """Classifies, records and retries LLM failures.

    One instance is shared by the dispatcher and everything built on it, so
    its statistics describe the whole process.

    Args:
        retry_config: Default retry settings for with_retry()
        history_size: Maximum number of records kept in the ring buffer
        sleep: Awaitable sleep used between retries (injectable for tests)
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        history_size: int = 1000,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.retry_config = retry_config or RetryConfig()
        self._history: deque[ErrorRecord] = deque(maxlen=history_size)
        self._sleep = sleep or asyncio.sleep
        self._total_errors = 0
        self._errors_by_kind: dict[str, int] = {}
        self._successful_retries = 0
        self._failed_retries = 0
        self._resolution_times: list[float] = []

    def handle_error(self, error: BaseException, context: dict[str, Any] | None = None) -> ErrorRecord:
        """Classify an error, record it and log it.

        Args:
            error: The failure to handle
            context: Optional context stored on the record

        Returns:
            The classified error record
        """
        start = time.perf_counter()
        record = classify_error(error, context)
        # Exhausted retries were already recorded attempt by attempt
        if not isinstance(error, RetryExhaustedError):
            self._record(record)
        self._resolution_times.append(time.perf_counter() - start)
        return record

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
    ) -> T:
        """Run an async operation, retrying retryable failures with backoff.

        Every failed attempt is classified and recorded. A non-retryable
        failure, or the last allowed attempt failing, raises
        RetryExhaustedError whose message carries the attempt count.

        Args:
            operation: Zero-argument callable returning an awaitable
            config: Retry settings; defaults to the handler's retry_config

        Returns:
            The operation's result

        Raises:
            RetryExhaustedError: If the operation could not be completed
        """
        cfg = config or self.retry_config
        total_attempts = cfg.max_retries + 1

        for attempt in range(1, total_attempts + 1):
            try:
                result = await operation()
            except Exception as e:
                record = classify_error(e)
                # Per-provider failures were already recorded by the dispatcher
                if not (isinstance(e, AllProvidersUnavailableError) and e.error_record is not None):
                    self._record(record)

                if attempt == total_attempts or not self._is_retryable(record, cfg):
                    self._failed_retries += 1
                    logger.error(
                        f"Operation failed permanently after {attempt} attempt(s) "
                        f"[{record.kind.value}]: {record.message}"
                    )
                    raise RetryExhaustedError(record, attempt) from e

                delay = calculate_delay(attempt - 1, cfg)
                logger.warning(
                    f"Attempt {attempt} failed [{record.kind.value}]: {record.message}. "
                    f"Retrying in {delay:.2f}s..."
                )
                await self._sleep(delay)
                continue

            if attempt > 1:
                self._successful_retries += 1
                logger.info(f"Operation succeeded on attempt {attempt}")
            return result

        # Unreachable: the loop either returns or raises
        raise RuntimeError("with_retry exited without a result")

    def get_error_stats(self) -> ErrorStats:
        """Return a snapshot of the error statistics."""
        times = self._resolution_times
        return ErrorStats(
            total_errors=self._total_errors,
            errors_by_kind=dict(self._errors_by_kind),
            recent_errors=list(self._history)[-10:],
            average_resolution_time=sum(times) / len(times) if times else 0.0,
            successful_retries=self._successful_retries,
            failed_retries=self._failed_retries,
        )

    def get_recent_errors(self, window_seconds: float) -> list[ErrorRecord]:
        """Records newer than ``window_seconds`` ago."""
        cutoff = time.time() - window_seconds
        return [r for r in self._history if r.timestamp > cutoff]

    def is_system_healthy(self, window_seconds: float = 300.0, max_errors_per_minute: float = 10.0) -> bool:
        """Coarse health signal: fewer than 10 errors/minute over the last 5 minutes."""
        recent = self.get_recent_errors(window_seconds)
        rate = len(recent) / (window_seconds / 60.0)
        return rate < max_errors_per_minute

    @staticmethod
    def user_friendly_message(record: ErrorRecord) -> str:
        """Fixed user-facing message for an error kind."""
        return _USER_MESSAGES.get(record.kind, _DEFAULT_USER_MESSAGE)

    @staticmethod
    def recovery_suggestions(record: ErrorRecord) -> list[str]:
        """Fixed list of recovery suggestions for an error kind."""
        return list(_RECOVERY_SUGGESTIONS.get(record.kind, _DEFAULT_SUGGESTIONS))

    def clear_error_history(self) -> None:
        """Reset history and all counters."""
        self._history.clear()
        self._total_errors = 0
        self._errors_by_kind = {}
        self._successful_retries = 0
        self._failed_retries = 0
        self._resolution_times = []
        logger.info("Error history cleared")

    def _record(self, record: ErrorRecord) -> None:
        self._history.append(record)
        self._total_errors += 1
        key = record.kind.value
        self._errors_by_kind[key] = self._errors_by_kind.get(key, 0) + 1

        message = f"LLM error [{key}]: {record.message}"
        if record.retryable:
            logger.warning(message)
        else:
            logger.error(message)
        if record.suggested_action:
            logger.debug(f"Suggested action: {record.suggested_action}")

    @staticmethod
    def _is_retryable(record: ErrorRecord, config: RetryConfig) -> bool:
        return record.retryable or record.kind.value in config.retryable_kinds


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Three-state guard around an unreliable async operation.

    - closed: calls pass through; consecutive failures are counted and
      reaching failure_threshold opens the circuit.
    - open: calls are rejected with CircuitOpenError, without invoking the
      operation, until reset_timeout has elapsed since the last failure.
    - half_open: one trial call at a time is admitted; success_threshold
      consecutive successes close the circuit, any failure reopens it.

    State is derived from the clock on every read, so an open circuit becomes
    half-open once its timeout elapses whether or not calls arrive. Failure
    counters are forgotten after monitoring_period without failures.

    Args:
        config: Thresholds and timeouts
        name: Label used in logs and errors
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        """Current state, applying any time-based transitions first."""
        self._refresh()
        return self._state

    @property
    def failure_count(self) -> int:
        self._refresh()
        return self._failure_count

    def allows_request(self) -> bool:
        """Whether a call made now would be admitted."""
        state = self.state
        if state == CircuitState.OPEN:
            return False
        if state == CircuitState.HALF_OPEN:
            return not self._trial_in_flight
        return True

    async def call(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Invoke ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open or a half-open trial is running
        """
        state = self.state
        if state == CircuitState.OPEN or (state == CircuitState.HALF_OPEN and self._trial_in_flight):
            raise CircuitOpenError(self.name, self._retry_after())

        trial = state == CircuitState.HALF_OPEN
        if trial:
            self._trial_in_flight = True
        try:
            result = await operation(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        else:
            self.record_success()
            return result
        finally:
            if trial:
                self._trial_in_flight = False

    def record_success(self) -> None:
        """Register a successful call."""
        self._refresh()
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.config.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._success_count = 0
                logger.info(f"Circuit breaker '{self.name}' closed - service recovered")
        else:
            self._failure_count = 0

    def record_failure(self) -> None:
        """Register a failed call."""
        self._refresh()
        self._last_failure_time = self._clock()
        self._success_count = 0

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.error(f"Circuit breaker '{self.name}' reopened after failed trial call")
            return

        self._failure_count += 1
        if self._state == CircuitState.CLOSED and self._failure_count >= self.config.failure_threshold:
            self._state = CircuitState.OPEN
            logger.error(
                f"Circuit breaker '{self.name}' opened after {self._failure_count} failures"
            )

    def reset(self) -> None:
        """Force the breaker back to closed."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        self._trial_in_flight = False

    def snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
        }

    def _refresh(self) -> None:
        if self._last_failure_time is None:
            return
        elapsed = self._clock() - self._last_failure_time

        if self._state == CircuitState.OPEN and elapsed >= self.config.reset_timeout:
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0
            logger.info(f"Circuit breaker '{self.name}' transitioning to half-open")

        if self._state == CircuitState.CLOSED and elapsed > self.config.monitoring_period:
            self._failure_count = 0

    def _retry_after(self) -> float:
        if self._last_failure_time is None:
            return 0.0
        remaining = self.config.reset_timeout - (self._clock() - self._last_failure_time)
        return max(remaining, 0.0)


def create_circuit_breaker(
    operation: Callable[..., Awaitable[T]],
    config: CircuitBreakerConfig | None = None,
    name: str = "default",
) -> Callable[..., Awaitable[T]]:
    """Wrap an async callable in a new CircuitBreaker.

    The breaker is reachable as the wrapper's ``breaker`` attribute.

    Example:
        >>> guarded = create_circuit_breaker(fetch, CircuitBreakerConfig(failure_threshold=2))
        >>> await guarded("arg")
        >>> guarded.breaker.state
        <CircuitState.CLOSED: 'closed'>
    """
    breaker = CircuitBreaker(config, name=name)

    async def guarded(*args: Any, **kwargs: Any) -> T:
        return await breaker.call(operation, *args, **kwargs)

    guarded.breaker = breaker  # type: ignore[attr-defined]
    return guarded


__all__ = [
    "ErrorKind",
    "RETRYABLE_KINDS",
    "ErrorRecord",
    "ErrorStats",
    "classify_error",
    "calculate_delay",
    "ErrorHandler",
    "CircuitState",
    "CircuitBreaker",
    "create_circuit_breaker",
]
