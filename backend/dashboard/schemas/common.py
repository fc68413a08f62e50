"""
Shared schema building blocks
"""
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Stored documents use camelCase keys; Python code uses snake_case."""

    def to_document(self, exclude_unset: bool = False) -> dict:
        """Stored form. ``exclude_unset`` drops unset top-level fields only; nested values are stored whole."""
        include = self.model_fields_set if exclude_unset else None
        return self.model_dump(mode="json", by_alias=True, include=include, exclude={"id"})

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class DocumentResponse(CamelModel):
    """Fields every stored document carries"""
    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        extra = "allow"


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope returned by every endpoint"""
    success: bool = True
    data: T


class MessageResponse(BaseModel):
    """Envelope for operations that return no document"""
    success: bool = True
    message: str
