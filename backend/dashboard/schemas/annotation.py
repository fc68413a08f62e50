"""
Annotation Schemas
Notes pinned to a date range on a client's reports.
"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from dashboard.schemas.common import CamelModel, DocumentResponse


class AnnotationType(str, Enum):
    EVENT = "event"
    INSIGHT = "insight"
    NOTE = "note"
    ALERT = "alert"


class AnnotationCreate(CamelModel):
    client_id: str = Field(..., min_length=1)
    website_id: Optional[str] = None
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: AnnotationType = AnnotationType.NOTE
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def default_end_date(self):
        if self.end_date is None:
            self.end_date = self.start_date
        if self.start_date > self.end_date:
            raise ValueError("startDate must be on or before endDate")
        return self


class AnnotationUpdate(CamelModel):
    website_id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    type: Optional[AnnotationType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AnnotationResponse(DocumentResponse):
    client_id: str
    website_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    type: AnnotationType = AnnotationType.NOTE
    start_date: date
    end_date: date
    created_by: Optional[str] = None
