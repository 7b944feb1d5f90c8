"""Shared schema base classes and the response envelope."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


T = TypeVar("T")


class ApiModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope: {success, data?, error?}."""

    success: bool = True
    data: T | None = None
    error: str | None = None


class MessageResponse(BaseModel):
    """Envelope for mutations without a payload."""

    success: bool = True
    message: str
