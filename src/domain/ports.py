"""Domain Ports - Abstract Contracts for Persistence, Remote Functions and LLM Access.

This module defines the Port interfaces (abstract contracts) that Adapters must implement.
Following Hexagonal Architecture, the Domain Core defines what it needs, not how it's provided.

Security Impact:
    - Services never see raw driver errors; adapters translate them into ServiceResult failures
    - Tenant isolation is enforced by the hosted database, so ports never widen a query
    - Type safety ensures only well-formed envelopes leave the service layer

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (hosted REST, PostgreSQL, DuckDB, Anthropic, Slack) implement these ports
    - Domain services are isolated from transport and driver specifics
    - TableQuery is a backend-neutral description of a single-table query
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

# Type variable for ServiceResult generic
T = TypeVar('T')


# ============================================================================
# Error Codes
# ============================================================================

class ErrorCode(str, Enum):
    """Failure codes carried by ServiceResult envelopes."""

    INVALID_INPUT = "INVALID_INPUT"
    DATABASE_ERROR = "DATABASE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    OPERATION_FAILED = "OPERATION_FAILED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    SKILL_DISABLED = "SKILL_DISABLED"
    NO_BEDS_AVAILABLE = "NO_BEDS_AVAILABLE"
    FALL_RISK_ASSESSMENT_FAILED = "FALL_RISK_ASSESSMENT_FAILED"
    FALL_RISK_SAVE_FAILED = "FALL_RISK_SAVE_FAILED"
    FALL_RISK_APPROVAL_FAILED = "FALL_RISK_APPROVAL_FAILED"
    ASSIGNMENT_FAILED = "ASSIGNMENT_FAILED"
    OPTIMIZATION_FAILED = "OPTIMIZATION_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# ============================================================================
# ServiceResult Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class ServiceError:
    """Error payload of a failed ServiceResult.

    Attributes:
        code: Error code (one of ErrorCode values)
        message: Human readable message, safe to return to API clients
        details: Additional context (driver error code, field name, etc.)
    """

    code: str
    message: str
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Every service method returns a ServiceResult so callers (API routes, CLI,
    batch jobs) can branch on the outcome without relying on exception
    handling. It follows the functional programming pattern of explicit
    error handling.

    Attributes:
        success: True if the operation succeeded, False otherwise
        data: The successful result value (only meaningful if success=True)
        error: Error information (only present if success=False)

    Example:
        ```python
        result = transfer_service.get_transfer(transfer_id)
        if result.is_success():
            render(result.data)
        else:
            log_error(result.error.code, result.error.message)
        ```
    """

    success: bool
    data: Optional[T] = None
    error: Optional[ServiceError] = None

    @classmethod
    def success_result(cls, data: T = None) -> 'ServiceResult[T]':
        """Create a successful result.

        Parameters:
            data: The successful result value

        Returns:
            ServiceResult: Success result with the value
        """
        return cls(success=True, data=data, error=None)

    @classmethod
    def failure_result(
        cls,
        code: Union[ErrorCode, str],
        message: Union[str, Exception],
        details: Optional[dict] = None
    ) -> 'ServiceResult[T]':
        """Create a failure result.

        Parameters:
            code: Error code (ErrorCode member or its string value)
            message: Error message or exception
            details: Additional context

        Returns:
            ServiceResult: Failure result with error information
        """
        code_value = code.value if isinstance(code, ErrorCode) else str(code)
        error_message = str(message) if isinstance(message, Exception) else message
        return cls(
            success=False,
            data=None,
            error=ServiceError(code=code_value, message=error_message, details=details or {})
        )

    @classmethod
    def from_failure(cls, other: 'ServiceResult[Any]') -> 'ServiceResult[T]':
        """Re-wrap another failed result (keeps code, message and details)."""
        if other.error is None:
            return cls.failure_result(ErrorCode.UNKNOWN_ERROR, "Operation failed")
        return cls(success=False, data=None, error=other.error)

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def to_dict(self) -> dict:
        """Render the wire envelope.

        Returns:
            dict: ``{"success": True, "data": ...}`` or
                  ``{"success": False, "error": {"code": ..., "message": ...}}``
        """
        if self.success:
            return {"success": True, "data": self.data}
        return {
            "success": False,
            "error": {"code": self.error.code, "message": self.error.message},
        }


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class CareOpsError(Exception):
    """Base exception for all service-level errors.

    Attributes:
        message: Error message
        source: Component that raised the error (adapter, skill, ...)
        details: Additional error details
    """

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.source = source
        self.details = details or {}


class ValidationError(CareOpsError):
    """Raised when request input fails validation.

    Services catch this and return an INVALID_INPUT failure; it never
    escapes the service layer.
    """
    pass


class StorageError(CareOpsError):
    """Raised when a storage operation fails.

    Attributes:
        operation: The storage operation that failed (select, insert, rpc, ...)
        details: Additional error details (driver error code, table, ...)
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, source="storage", details=details)
        self.operation = operation


class ExternalServiceError(CareOpsError):
    """Raised when a remote function or webhook call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, source: Optional[str] = None):
        super().__init__(message, source=source, details={"status_code": status_code})
        self.status_code = status_code


class LLMError(ExternalServiceError):
    """Raised when the hosted language model call fails or returns unusable text."""
    pass


class SkillDisabledError(CareOpsError):
    """Raised when an AI skill is turned off for the requesting tenant."""
    pass


# ============================================================================
# Query Description
# ============================================================================

@dataclass(frozen=True)
class Filter:
    """A single column predicate.

    Attributes:
        column: Column name (snake_case)
        operator: One of eq, neq, gt, gte, lt, lte, ilike, in, not_in, is_null, not_null
        value: Comparison value (list for in/not_in, None for null checks)
    """

    column: str
    operator: str
    value: Any = None


class TableQuery:
    """Backend-neutral description of a single-table query.

    Built fluently and rendered by each adapter: PostgREST query strings for the
    hosted database, parameterized SQL for PostgreSQL and DuckDB.

    Example:
        ```python
        query = (
            TableQuery("transfer_requests")
            .not_in("status", ["completed", "cancelled"])
            .eq("urgency", "emergent")
            .order("requested_at")
            .limit(50)
        )
        result = database.select(query)
        ```
    """

    def __init__(self, table: str, columns: str = "*"):
        self.table = table
        self.columns = columns
        self.filters: list[Filter] = []
        self.or_groups: list[list[Filter]] = []
        self.ordering: list[tuple[str, bool]] = []
        self.limit_value: Optional[int] = None
        self.offset_value: Optional[int] = None

    def select(self, columns: str) -> 'TableQuery':
        self.columns = columns
        return self

    def _add(self, column: str, operator: str, value: Any = None) -> 'TableQuery':
        self.filters.append(Filter(column, operator, value))
        return self

    def eq(self, column: str, value: Any) -> 'TableQuery':
        return self._add(column, "eq", value)

    def neq(self, column: str, value: Any) -> 'TableQuery':
        return self._add(column, "neq", value)

    def gt(self, column: str, value: Any) -> 'TableQuery':
        return self._add(column, "gt", value)

    def gte(self, column: str, value: Any) -> 'TableQuery':
        return self._add(column, "gte", value)

    def lt(self, column: str, value: Any) -> 'TableQuery':
        return self._add(column, "lt", value)

    def lte(self, column: str, value: Any) -> 'TableQuery':
        return self._add(column, "lte", value)

    def in_(self, column: str, values: list) -> 'TableQuery':
        return self._add(column, "in", list(values))

    def not_in(self, column: str, values: list) -> 'TableQuery':
        return self._add(column, "not_in", list(values))

    def ilike(self, column: str, pattern: str) -> 'TableQuery':
        """Case-insensitive pattern match (SQL LIKE syntax, '%' wildcard)."""
        return self._add(column, "ilike", pattern)

    def is_null(self, column: str) -> 'TableQuery':
        return self._add(column, "is_null")

    def not_null(self, column: str) -> 'TableQuery':
        return self._add(column, "not_null")

    def or_(self, *filters: Filter) -> 'TableQuery':
        """Add a disjunction: at least one of the given filters must match."""
        if filters:
            self.or_groups.append(list(filters))
        return self

    def order(self, column: str, ascending: bool = True) -> 'TableQuery':
        self.ordering.append((column, ascending))
        return self

    def limit(self, count: int) -> 'TableQuery':
        self.limit_value = count
        return self

    def offset(self, count: int) -> 'TableQuery':
        self.offset_value = count
        return self

    def __repr__(self) -> str:
        return (
            f"TableQuery(table={self.table!r}, filters={len(self.filters)}, "
            f"or_groups={len(self.or_groups)}, limit={self.limit_value})"
        )


# ============================================================================
# Database Port
# ============================================================================

class DatabasePort(ABC):
    """Abstract contract for the relational store behind every service.

    The production deployment talks to a hosted Postgres platform over HTTP
    (row-level security applied there); PostgreSQL and DuckDB adapters exist
    for direct connections and local/offline work.

    Key Principles:
        - Every method returns ServiceResult; adapters never raise to services
        - Rows are plain dicts keyed by snake_case column names
        - Writes return the affected rows where the backend supports it

    Security Impact:
        - Queries are always parameterized (no string interpolation of values)
        - Identifiers are validated before being rendered into SQL
        - Driver errors are logged with context but only a summary is returned
    """

    @abstractmethod
    def select(self, query: TableQuery) -> ServiceResult[list[dict]]:
        """Return all rows matching the query."""
        pass

    @abstractmethod
    def select_one(self, query: TableQuery) -> ServiceResult[Optional[dict]]:
        """Return the first matching row, or None when nothing matches.

        A missing row is a successful result with ``data=None``; only
        backend failures produce a DATABASE_ERROR.
        """
        pass

    @abstractmethod
    def insert(self, table: str, rows: Union[dict, list[dict]]) -> ServiceResult[list[dict]]:
        """Insert one or more rows and return them as stored."""
        pass

    @abstractmethod
    def update(self, query: TableQuery, values: dict) -> ServiceResult[list[dict]]:
        """Update rows matching the query's filters and return the updated rows."""
        pass

    @abstractmethod
    def upsert(
        self,
        table: str,
        rows: Union[dict, list[dict]],
        on_conflict: str
    ) -> ServiceResult[list[dict]]:
        """Insert rows, updating existing rows that collide on ``on_conflict`` columns.

        Parameters:
            table: Target table
            rows: Row or rows to write
            on_conflict: Comma separated conflict target (e.g. "tenant_id,senior_id")
        """
        pass

    @abstractmethod
    def delete(self, query: TableQuery) -> ServiceResult[int]:
        """Delete rows matching the query's filters and return the count removed."""
        pass

    @abstractmethod
    def count(self, query: TableQuery) -> ServiceResult[int]:
        """Count rows matching the query's filters."""
        pass

    @abstractmethod
    def rpc(self, function: str, params: Optional[dict] = None) -> ServiceResult[Any]:
        """Call a stored database function with named parameters."""
        pass

    @abstractmethod
    def ping(self) -> ServiceResult[bool]:
        """Check connectivity."""
        pass

    def close(self) -> None:
        """Release connections (default: nothing to release)."""
        return None


# ============================================================================
# Remote Function Port
# ============================================================================

class FunctionsPort(ABC):
    """Abstract contract for invoking hosted serverless functions."""

    @abstractmethod
    def invoke(self, name: str, body: Optional[dict] = None) -> ServiceResult[Any]:
        """Invoke a remote function with a JSON body.

        Returns:
            ServiceResult: Parsed JSON response, or EXTERNAL_SERVICE_ERROR
        """
        pass


# ============================================================================
# LLM Port
# ============================================================================

@dataclass(frozen=True)
class LLMResponse:
    """Text reply from the hosted language model plus usage accounting."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    latency_ms: int = 0


class LLMRouterPort(ABC):
    """Abstract contract for the cost-optimizing LLM router."""

    @abstractmethod
    def call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        complexity: str = "simple",
        temperature: float = 0.3,
        max_tokens: int = 2048,
        user_id: Optional[str] = None
    ) -> ServiceResult[LLMResponse]:
        """Send a prompt and return the model's text reply.

        Parameters:
            prompt: User prompt
            system_prompt: Optional system prompt
            model: Explicit model id; when None the router picks by complexity
            complexity: "simple" routes to the cheap model, "complex" to the accurate one
            temperature: Sampling temperature
            max_tokens: Completion token cap
            user_id: Caller identity for usage attribution (tenant or user id)
        """
        pass

    @abstractmethod
    def calculate_cost(self, input_tokens: int, output_tokens: int, model: str) -> float:
        """Return the USD cost of a call."""
        pass


# ============================================================================
# Notification Channel Port
# ============================================================================

class NotificationChannelPort(ABC):
    """Abstract contract for an outbound notification channel (Slack)."""

    @abstractmethod
    def send(self, payload: dict) -> ServiceResult[dict]:
        """Deliver a notification payload.

        Parameters:
            payload: Channel-neutral notification dict (title, body, priority,
                     category, action_url, data, channel)
        """
        pass
