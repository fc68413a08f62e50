"""
Target Schemas
"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from dashboard.schemas.common import CamelModel, DocumentResponse


class TargetMetric(str, Enum):
    REVENUE = "revenue"
    ROAS = "roas"
    CPA = "cpa"
    SESSIONS = "sessions"


class TargetGranularity(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TargetCreate(CamelModel):
    metric: TargetMetric
    granularity: TargetGranularity
    period_name: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    value: float
    website_id: Optional[str] = None

    @model_validator(mode="after")
    def check_period(self):
        if self.start_date > self.end_date:
            raise ValueError("startDate must be on or before endDate")
        return self


class TargetUpdate(CamelModel):
    metric: Optional[TargetMetric] = None
    granularity: Optional[TargetGranularity] = None
    period_name: Optional[str] = Field(None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    value: Optional[float] = None
    website_id: Optional[str] = None


class TargetResponse(DocumentResponse):
    metric: TargetMetric
    granularity: TargetGranularity
    period_name: str
    start_date: date
    end_date: date
    value: float
    website_id: Optional[str] = None
