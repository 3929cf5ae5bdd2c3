"""
Base schemas with common functionality.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from shopledger.core.utils import ensure_utc


class BaseSchema(BaseModel):
    """
    Base schema with common functionality for all schemas.

    Attributes are snake_case in Python and camelCase on the wire; either
    spelling is accepted on input.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_api(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class TimestampedSchema(BaseSchema):
    """Base schema for records with timestamp fields"""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _utc_timestamps(cls, value):
        return ensure_utc(value)
