# foreclosure_staging/schemas.py
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CandidateListing(BaseModel):
    """Normalized projection of one scraped listing.

    Sources hand the orchestrator plain dicts; whatever fails validation here
    is skipped for the run.
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    external_id: str = Field(..., min_length=1, max_length=255)
    title: Optional[str] = None
    type: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    address_neighborhood: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = Field(None, max_length=2)
    address: Optional[str] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    area: Optional[float] = Field(None, ge=0)
    parking_spaces: Optional[int] = Field(None, ge=0)
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    accepts_fgts: bool = False
    accepts_financing: bool = False
    modality: Optional[str] = None
    source_link: Optional[str] = None
    auction_date: Optional[date] = None

    @field_validator("address_state")
    @classmethod
    def upper_state(cls, value):
        return value.upper() if value else value


class ScrapingConfigCreate(BaseModel):
    name: str = Field(..., min_length=1)
    states: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("states")
    @classmethod
    def upper_states(cls, value):
        return [s.strip().upper() for s in value if s and s.strip()]


class ScrapingConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    states: List[str]
    is_active: bool
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ScrapingLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    config_id: int
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    properties_found: int
    properties_new: int
    error_message: Optional[str] = None


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    external_id: str
    title: Optional[str] = None
    type: Optional[str] = None
    price: Optional[float] = None
    original_price: Optional[float] = None
    discount: Optional[float] = None
    address_neighborhood: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    area: Optional[float] = None
    parking_spaces: Optional[int] = None
    images: Optional[List[str]] = None
    accepts_fgts: Optional[bool] = None
    accepts_financing: Optional[bool] = None
    modality: Optional[str] = None
    source_link: Optional[str] = None
    auction_date: Optional[date] = None
    status: str
    created_at: Optional[datetime] = None


class StagingPropertyOut(ListingOut):
    raw_data: Dict[str, Any]
    reviewed_at: Optional[datetime] = None


class PropertyOut(ListingOut):
    sold_at: Optional[datetime] = None


class RunRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    config_id: int = Field(..., alias="configId")
    states: Optional[List[str]] = None


class RunResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    success: bool
    properties_found: int = Field(0, serialization_alias="propertiesFound")
    properties_new: int = Field(0, serialization_alias="propertiesNew")
    error: Optional[str] = None
    log_id: Optional[int] = Field(None, serialization_alias="logId")
    stale_run_ids: List[int] = Field(default_factory=list, serialization_alias="staleRunIds")


class BulkImportRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class BulkImportResponse(BaseModel):
    succeeded: List[int]
    failed: Dict[int, str]
