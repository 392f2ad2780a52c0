"""Listing and bid request/response schemas."""

from typing import Optional
from pydantic import BaseModel, Field


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    district: str = Field(min_length=1, max_length=255)
    water_type: Optional[str] = None
    volume_af: int = Field(gt=0)
    price_per_af: int = Field(gt=0)  # cents
    kind: str = "SELL"  # SELL | AUCTION
    availability_start: Optional[str] = None
    availability_end: Optional[str] = None


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    water_type: Optional[str] = None
    volume_af: Optional[int] = Field(default=None, gt=0)
    price_per_af: Optional[int] = Field(default=None, gt=0)
    status: Optional[str] = None  # ACTIVE | CLOSED
    availability_start: Optional[str] = None
    availability_end: Optional[str] = None


class ListingResponse(BaseModel):
    id: str
    seller_id: str
    title: str
    description: Optional[str]
    district: str
    water_type: Optional[str]
    volume_af: int
    price_per_af: int
    kind: str
    status: str
    availability_start: Optional[str]
    availability_end: Optional[str]
    highest_bid: Optional[int] = None
    created_at: str

    class Config:
        from_attributes = True


class ListingListResponse(BaseModel):
    listings: list[ListingResponse]
    total: int
    page: int
    page_size: int


class BidCreate(BaseModel):
    price_per_af: int = Field(gt=0)  # cents


class BidResponse(BaseModel):
    id: str
    listing_id: str
    bidder_id: str
    price_per_af: int
    created_at: str

    class Config:
        from_attributes = True
