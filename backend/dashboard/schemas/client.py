"""
Client Schemas
"""
import re
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from dashboard.schemas.common import CamelModel, DocumentResponse

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class CurrencySettings(CamelModel):
    """Monthly rates: monthly_rates["EUR"]["2024-03"] = EUR per 1 base currency unit"""
    base_currency: str = "GBP"
    monthly_rates: Dict[str, Dict[str, float]] = {}

    @field_validator("base_currency")
    @classmethod
    def upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("monthly_rates")
    @classmethod
    def check_rates(cls, value: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, float]]:
        for currency, months in value.items():
            for month, rate in months.items():
                if not MONTH_KEY_RE.match(month):
                    raise ValueError(f"{currency}: month key {month!r} must be YYYY-MM")
                if rate <= 0:
                    raise ValueError(f"{currency} {month}: rate must be positive")
        return {currency.upper(): months for currency, months in value.items()}


class ClientCreate(CamelModel):
    id: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_-]+$")
    client_name: str = Field(..., min_length=1)
    big_query_dataset_id: str = Field(..., pattern=r"^[A-Za-z0-9_]+$")
    currency_settings: Optional[CurrencySettings] = None
    disabled_menu_items: List[str] = []


class ClientUpdate(CamelModel):
    client_name: Optional[str] = Field(None, min_length=1)
    big_query_dataset_id: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_]+$")
    currency_settings: Optional[CurrencySettings] = None
    disabled_menu_items: Optional[List[str]] = None


class ClientResponse(DocumentResponse):
    client_name: str
    big_query_dataset_id: str
    currency_settings: Optional[CurrencySettings] = None
    disabled_menu_items: List[str] = []


class ClientSettingsResponse(CamelModel):
    disabled_menu_items: List[str] = []
    currency_settings: CurrencySettings = CurrencySettings()


class CustomLinkCreate(CamelModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    sort_order: int = 0


class CustomLinkUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    url: Optional[str] = Field(None, min_length=1)
    sort_order: Optional[int] = None


class CustomLinkResponse(DocumentResponse):
    name: str
    url: str
    sort_order: int = 0
