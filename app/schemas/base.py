"""
Base Schema Classes for Pydantic Models

Input schemas reject unknown fields, so a typo or a client-computed
``amount`` fails loudly instead of being dropped. Response schemas read
straight from ORM objects and service dataclasses.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class InvoiceBrief(BaseResponseSchema):
            id: UUID
            invoice_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are an error."""
    model_config = ConfigDict(
        extra='forbid',
        str_strip_whitespace=True,
    )
