"""
Website Schemas
A website is either one storefront (has a store id) or a group of sibling
storefronts of the same client.
"""
from typing import List, Optional

from pydantic import Field, model_validator

from dashboard.schemas.common import CamelModel, DocumentResponse


class WebsiteFields(CamelModel):
    website_name: str = Field(..., min_length=1)
    big_query_website_id: str = Field(..., min_length=1)
    store_id: str = ""
    url: Optional[str] = None
    store_currency_code: Optional[str] = None
    display_currency_code: Optional[str] = None
    base_currency_code: Optional[str] = None
    is_grouped: bool = False
    grouped_website_ids: List[str] = []

    @model_validator(mode="after")
    def check_grouping(self):
        if self.is_grouped:
            if self.store_id:
                raise ValueError("Grouped websites cannot have a storeId")
            if len(set(self.grouped_website_ids)) != len(self.grouped_website_ids):
                raise ValueError("groupedWebsiteIds contains duplicates")
            if len(self.grouped_website_ids) < 2:
                raise ValueError("Grouped websites must have at least 2 website IDs in groupedWebsiteIds")
        else:
            if not self.store_id:
                raise ValueError("storeId is required for non-grouped websites")
            if self.grouped_website_ids:
                raise ValueError("groupedWebsiteIds is only allowed on grouped websites")
        return self


class WebsiteCreate(WebsiteFields):
    id: str = Field(..., pattern=r"^[A-Za-z0-9_-]+$")

    @model_validator(mode="after")
    def check_not_self_member(self):
        if self.id in self.grouped_website_ids:
            raise ValueError("A grouped website cannot contain itself")
        return self


class WebsiteUpdate(CamelModel):
    website_name: Optional[str] = Field(None, min_length=1)
    big_query_website_id: Optional[str] = Field(None, min_length=1)
    store_id: Optional[str] = None
    url: Optional[str] = None
    store_currency_code: Optional[str] = None
    display_currency_code: Optional[str] = None
    base_currency_code: Optional[str] = None
    is_grouped: Optional[bool] = None
    grouped_website_ids: Optional[List[str]] = None


class WebsiteResponse(DocumentResponse):
    website_name: str
    big_query_website_id: str
    store_id: str = ""
    url: Optional[str] = None
    is_grouped: bool = False
    grouped_website_ids: List[str] = []
