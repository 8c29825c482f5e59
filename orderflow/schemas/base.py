"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas read from ORM models.

    Usage:
        class LocationApprovalResponse(BaseResponseSchema):
            id: UUID
            location: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
    )


class BaseRequestSchema(BaseModel):
    """
    Base class for request bodies.

    Unknown fields are rejected with 422.
    """
    model_config = ConfigDict(
        extra='forbid',
        str_strip_whitespace=True,
    )
