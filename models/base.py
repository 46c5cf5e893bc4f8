"""
Base schemas for all models.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM/row objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class ValueSchema(BaseModel):
    """
    Base for immutable value objects (pricing inputs and breakdowns).

    Frozen so a computed breakdown cannot be altered after the fact.
    """
    model_config = ConfigDict(
        frozen=True,
        extra="ignore"
    )
