"""Domain Guardrails - Circuit Breaker, Input Validation and Safety Clamps.

This module provides guardrails that protect the service layer and the
hosted language model from cascading failures and unsafe input. The
CircuitBreaker monitors LLM call failure rates and stops routing calls
when the provider is unhealthy; the validators and sanitizers are applied
to every request before it reaches the database or a prompt.

Security Impact:
    - Prevents prompt injection characters from reaching model prompts
    - Rejects malformed identifiers before they are used in queries
    - Redacts contact details and SSNs from free text before it is logged
    - Stops hammering a failing provider (cost and latency protection)

Architecture:
    - Pure domain logic with no infrastructure dependencies
    - Configurable thresholds for the breaker
    - Thread-safe design for concurrent API requests
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from threading import Lock
from typing import Optional, Union

from src.domain.ports import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerConfig:
    """Configuration for CircuitBreaker behavior.

    Attributes:
        failure_threshold_percent: Percentage of failures that triggers circuit open (0-100)
        window_size: Number of calls to evaluate in the sliding window
        min_records_before_check: Minimum calls recorded before checking threshold
        abort_on_open: If True, raise CircuitBreakerOpenError when threshold exceeded
                      If False, only log warnings and let the caller decide
    """
    failure_threshold_percent: float = 50.0
    window_size: int = 100
    min_records_before_check: int = 10
    abort_on_open: bool = False


class CircuitBreakerOpenError(Exception):
    """Raised when CircuitBreaker opens due to excessive failures.

    Attributes:
        failure_rate: The calculated failure rate percentage
        threshold: The configured threshold that was exceeded
        records_processed: Number of calls recorded when circuit opened
        failures: Number of failures when circuit opened
    """

    def __init__(
        self,
        message: str,
        failure_rate: float,
        threshold: float,
        records_processed: int,
        failures: int
    ):
        super().__init__(message)
        self.failure_rate = failure_rate
        self.threshold = threshold
        self.records_processed = records_processed
        self.failures = failures


class CircuitBreaker:
    """Circuit Breaker for monitoring remote call failure rates.

    The LLM router records the outcome of every model call here. Once the
    failure rate in the sliding window reaches the threshold the circuit
    opens and the router short-circuits further calls with an
    AI_SERVICE_ERROR result, letting skills fall back to their rule-based
    paths instead of waiting on timeouts.

    Key Features:
        - Sliding window: Only considers the most recent N calls
        - Configurable thresholds: Adjustable failure percentage and window size
        - Thread-safe: Uses locks for concurrent access
        - Manual reset from the dashboard or CLI

    Example Usage:
        ```python
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold_percent=50.0))

        if breaker.is_open():
            return ServiceResult.failure_result(ErrorCode.AI_SERVICE_ERROR, "LLM unavailable")
        ok = call_model()
        breaker.record_outcome(ok)
        ```
    """

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        """Initialize CircuitBreaker.

        Parameters:
            config: CircuitBreaker configuration (uses defaults if None)
        """
        self.config = config or CircuitBreakerConfig()
        self._results: list[bool] = []  # True for success, False for failure
        self._lock = Lock()
        self._is_open = False
        self._total_processed = 0
        self._total_failures = 0

    def record_outcome(self, success: bool) -> None:
        """Record a call outcome and check if circuit should open.

        Parameters:
            success: True if the call succeeded

        Raises:
            CircuitBreakerOpenError: If abort_on_open=True and threshold exceeded
        """
        with self._lock:
            self._results.append(bool(success))
            self._total_processed += 1
            if not success:
                self._total_failures += 1

            # _total_failures counts every failure ever seen; the window only the recent ones
            while len(self._results) > self.config.window_size:
                self._results.pop(0)

            if self._total_processed >= self.config.min_records_before_check:
                self._check_threshold()

    def _check_threshold(self) -> None:
        """Check if failure threshold is exceeded and open circuit if needed."""
        if len(self._results) == 0:
            return

        failures_in_window = sum(1 for r in self._results if not r)
        total_in_window = len(self._results)
        failure_rate = (failures_in_window / total_in_window) * 100.0

        if failure_rate >= self.config.failure_threshold_percent:
            if not self._is_open:
                self._is_open = True

                logger.error(
                    f"CircuitBreaker OPEN: Failure rate {failure_rate:.1f}% "
                    f"exceeds threshold {self.config.failure_threshold_percent}% "
                    f"(failures: {failures_in_window}/{total_in_window} in window, "
                    f"total: {self._total_failures}/{self._total_processed})"
                )

                if self.config.abort_on_open:
                    raise CircuitBreakerOpenError(
                        f"CircuitBreaker opened: {failure_rate:.1f}% failure rate "
                        f"exceeds threshold {self.config.failure_threshold_percent}%",
                        failure_rate=failure_rate,
                        threshold=self.config.failure_threshold_percent,
                        records_processed=self._total_processed,
                        failures=self._total_failures
                    )
        else:
            if self._is_open:
                self._is_open = False
                logger.info(
                    f"CircuitBreaker CLOSED: Failure rate {failure_rate:.1f}% "
                    f"is below threshold {self.config.failure_threshold_percent}%"
                )

    def is_open(self) -> bool:
        """Check if circuit breaker is currently open.

        Returns:
            bool: True if circuit is open (threshold exceeded), False otherwise
        """
        with self._lock:
            return self._is_open

    def reset(self) -> None:
        """Reset the circuit breaker to initial state."""
        with self._lock:
            self._results.clear()
            self._is_open = False
            self._total_processed = 0
            self._total_failures = 0
            logger.info("CircuitBreaker reset")

    def get_statistics(self) -> dict:
        """Get current statistics about the circuit breaker.

        Returns:
            dict: Statistics including:
                - is_open: Whether circuit is currently open
                - total_processed: Total calls recorded
                - total_failures: Total failures recorded
                - window_size: Configured window size
                - records_in_window: Number of calls in current sliding window
                - failures_in_window: Failures in current window
                - failure_rate: Current failure rate percentage
                - threshold: Configured threshold percentage
                - min_records_before_check: Minimum calls before checking threshold
        """
        with self._lock:
            failures_in_window = sum(1 for r in self._results if not r)
            total_in_window = len(self._results)
            failure_rate = (failures_in_window / total_in_window * 100.0) if total_in_window > 0 else 0.0

            return {
                'is_open': self._is_open,
                'total_processed': self._total_processed,
                'total_failures': self._total_failures,
                'window_size': self.config.window_size,
                'records_in_window': total_in_window,
                'failures_in_window': failures_in_window,
                'failure_rate': failure_rate,
                'threshold': self.config.failure_threshold_percent,
                'min_records_before_check': self.config.min_records_before_check,
            }


# ============================================================================
# Input Validation
# ============================================================================

UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)
ICD10_PATTERN = re.compile(r'^[A-Z]\d{2}(\.\d{1,4})?$')
CPT_PATTERN = re.compile(r'^(\d{5}|\d{4}[A-Z])$')
BADGE_PATTERN = re.compile(r'^[A-Z0-9-]{1,20}$', re.IGNORECASE)

_INJECTION_CHARS = re.compile(r"[<>'\";]")
_SQL_COMMENT = re.compile(r"--")

_EMAIL_PATTERN = re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}')
_SSN_PATTERN = re.compile(r'\b\d{3}-\d{2}-\d{4}\b')
_PHONE_PATTERN = re.compile(r'(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b')


def is_valid_uuid(value: Optional[str]) -> bool:
    """Return True if value is a canonical 8-4-4-4-12 UUID string."""
    if not value or not isinstance(value, str):
        return False
    return bool(UUID_PATTERN.match(value))


def is_valid_icd10(code: Optional[str]) -> bool:
    """Return True for ICD-10-CM shaped codes (letter, two digits, optional .1-4 digits)."""
    if not code or not isinstance(code, str):
        return False
    return bool(ICD10_PATTERN.match(code))


def is_valid_cpt(code: Optional[str]) -> bool:
    """Return True for five digit CPT codes or four digits plus a category letter."""
    if not code or not isinstance(code, str):
        return False
    return bool(CPT_PATTERN.match(code))


def validate_uuid(value: Optional[str], field_name: str) -> str:
    """Validate a UUID field.

    Raises:
        ValidationError: "Invalid {field}: must be valid UUID"
    """
    if not is_valid_uuid(value):
        raise ValidationError(f"Invalid {field_name}: must be valid UUID", details={"field": field_name})
    return value


def validate_date(value: Union[str, date, None], field_name: str) -> str:
    """Validate an ISO date/datetime string and return it as given.

    Raises:
        ValidationError: "Invalid {field}: must be valid ISO date"
    """
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if not value or not isinstance(value, str):
        raise ValidationError(f"Invalid {field_name}: must be valid ISO date", details={"field": field_name})
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: must be valid ISO date", details={"field": field_name})
    return value


def validate_badge_number(badge: Optional[str]) -> str:
    """Validate an officer badge number and return it upper-cased.

    Raises:
        ValidationError: If the badge is not 1-20 alphanumeric/dash characters
    """
    if not badge or not BADGE_PATTERN.match(badge):
        raise ValidationError(
            "Invalid badge number: must be alphanumeric, max 20 characters",
            details={"field": "officerBadgeNumber"}
        )
    return badge.upper()


def validate_enum(value: Optional[str], allowed: tuple, field_name: str) -> str:
    """Validate that value is one of the allowed strings.

    Raises:
        ValidationError: "Invalid {field}: {value}"
    """
    if value not in allowed:
        raise ValidationError(f"Invalid {field_name}: {value}", details={"field": field_name})
    return value


def sanitize_text(text: Optional[str], max_length: int = 500) -> str:
    """Strip prompt/SQL injection characters, truncate and trim free text.

    Parameters:
        text: User supplied text (None is treated as empty)
        max_length: Maximum length kept after stripping

    Returns:
        str: Sanitized text
    """
    if not text:
        return ""
    cleaned = _INJECTION_CHARS.sub("", str(text))
    cleaned = _SQL_COMMENT.sub("", cleaned)
    return cleaned[:max_length].strip()


def redact_phi(text: Optional[str]) -> str:
    """Replace emails, SSNs and phone numbers in free text with placeholders."""
    if not text:
        return ""
    redacted = _EMAIL_PATTERN.sub("[EMAIL]", text)
    redacted = _SSN_PATTERN.sub("[SSN]", redacted)
    redacted = _PHONE_PATTERN.sub("[PHONE]", redacted)
    return redacted


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into the closed interval [low, high]."""
    return max(low, min(high, value))


def classify_capacity_risk(utilization: float) -> str:
    """Map bed utilization (0.0-1.0) to a capacity risk level.

    Returns:
        str: 'low' (< 70%), 'moderate' (70-85%), 'high' (85-95%) or 'critical' (> 95%)
    """
    if utilization > 0.95:
        return "critical"
    if utilization >= 0.85:
        return "high"
    if utilization >= 0.70:
        return "moderate"
    return "low"


def new_id() -> str:
    """Generate a random UUID string."""
    return str(uuid.uuid4())
