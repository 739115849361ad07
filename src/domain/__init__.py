"""Domain layer for CareOps.

This module contains the result envelope, ports, guardrails and the request
and response schemas for every feature area. Domain models are pure Python
with no external dependencies beyond Pydantic.
"""

from .ports import (
    ErrorCode,
    ServiceError,
    ServiceResult,
    TableQuery,
    DatabasePort,
    FunctionsPort,
    LLMRouterPort,
    NotificationChannelPort,
)

__all__ = [
    "ErrorCode",
    "ServiceError",
    "ServiceResult",
    "TableQuery",
    "DatabasePort",
    "FunctionsPort",
    "LLMRouterPort",
    "NotificationChannelPort",
]
