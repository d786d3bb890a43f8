"""
Base Schema Classes for Pydantic Models

RULE: All schemas that read from ORM models (`from_attributes=True`) MUST
inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for schemas that read from ORM models.

    Usage:
        snapshot = PaidOrderSnapshot.model_validate(order)
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )
