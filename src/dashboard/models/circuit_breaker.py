"""Circuit breaker status model for the CareOps API."""

from typing import Literal

from pydantic import BaseModel, Field


class CircuitBreakerStatus(BaseModel):
    """State of the circuit breaker guarding language model calls.

    ``source`` tells whether the numbers come from the live breaker in this
    process or were estimated from recent audit events.
    """
    is_open: bool
    failure_rate: float = Field(..., description="Failure percentage over the window")
    threshold: float = Field(..., description="Failure percentage that opens the breaker")
    total_processed: int = 0
    total_failures: int = 0
    window_size: int
    failures_in_window: int = 0
    records_in_window: int = 0
    min_records_before_check: int
    source: Literal["live", "audit_log"] = "live"
