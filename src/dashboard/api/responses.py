"""ServiceResult to HTTP translation.

Successful results are returned in the service envelope
``{"success": true, "data": ...}`` with camelCase keys. Failures become
``HTTPException`` with a status derived from the error code; the detail
carries the code and message only.
"""

from typing import Any

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from src.domain.ports import ErrorCode, ServiceResult
from src.domain.utils import camelize_keys

STATUS_BY_ERROR_CODE = {
    ErrorCode.INVALID_INPUT.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.SKILL_DISABLED.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.UNAUTHORIZED.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.NO_BEDS_AVAILABLE.value: status.HTTP_409_CONFLICT,
    ErrorCode.AI_SERVICE_ERROR.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.EXTERNAL_SERVICE_ERROR.value: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error_code: str) -> int:
    return STATUS_BY_ERROR_CODE.get(error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def to_wire(data: Any) -> Any:
    """JSON-compatible value with camelCase keys."""
    if isinstance(data, BaseModel):
        return jsonable_encoder(data, by_alias=True)
    if isinstance(data, (list, tuple)):
        return [to_wire(item) for item in data]
    if isinstance(data, dict):
        return camelize_keys({key: to_wire(value) for key, value in data.items()})
    return jsonable_encoder(data)


def respond(result: ServiceResult) -> dict:
    """Return the success envelope or raise HTTPException for a failure."""
    if result.is_failure():
        raise HTTPException(
            status_code=status_for(result.error_code),
            detail={"code": result.error_code, "message": result.error.message},
        )
    return {"success": True, "data": to_wire(result.data)}
