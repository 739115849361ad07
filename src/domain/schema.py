"""Shared Pydantic base model for request/response schemas.

API clients send and receive camelCase keys while Python code uses
snake_case attributes. ``CamelModel`` accepts either spelling on input and
renders camelCase with ``model_dump(by_alias=True)``.
"""

from pydantic import BaseModel, ConfigDict

from src.domain.utils import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_api(self) -> dict:
        """Serialize with camelCase keys and JSON-compatible values."""
        return self.model_dump(by_alias=True, mode="json")

    def to_row(self, exclude_none: bool = False) -> dict:
        """Serialize with snake_case keys for database writes."""
        return self.model_dump(mode="json", exclude_none=exclude_none)
