"""Functions port for stores without remote functions.

Direct PostgreSQL and local DuckDB deployments have no hosted function
runtime, so SMS, push and bed-operation calls report a failure result that
callers already handle (logged, counted as not delivered).
"""

import logging
from typing import Any, Optional

from src.domain.ports import ErrorCode, FunctionsPort, ServiceResult

logger = logging.getLogger(__name__)


class OfflineFunctions(FunctionsPort):
    """FunctionsPort that refuses every invocation."""

    def __init__(self, db_type: str):
        self.db_type = db_type

    def invoke(self, name: str, body: Optional[dict] = None) -> ServiceResult[Any]:
        logger.debug(f"Remote function {name} skipped ({self.db_type} store)")
        return ServiceResult.failure_result(
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Remote function {name} is not available for {self.db_type} stores",
        )
