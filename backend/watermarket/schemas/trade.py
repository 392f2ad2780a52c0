"""Trade request/response schemas."""

from typing import Any, Optional
from pydantic import BaseModel


class TradeCreate(BaseModel):
    listing_id: str
    seller_user_id: Optional[str] = None
    district: str
    water_type: Optional[str] = None
    volume_af: int
    price_per_af: int  # cents
    window_label: Optional[str] = None


class CounterRequest(BaseModel):
    # Optional here so missing terms surface as a field-level 400 from the
    # state machine rather than a generic 422
    price_per_af: Optional[int] = None  # cents
    volume_af: Optional[int] = None
    window_label: Optional[str] = None
    version: Optional[int] = None


class TradeView(BaseModel):
    """What a party (or admin) may see of a trade. Never carries tokens."""

    id: str
    listing_id: str
    district: str
    water_type: Optional[str]
    volume_af: int
    price_per_af: int
    window_label: Optional[str]
    status: str
    round: int
    last_actor: str
    version: int
    role: str
    buyer_sign_status: Optional[str]
    seller_sign_status: Optional[str]
    created_at: str
    updated_at: str


class TradeEnvelope(BaseModel):
    trade: TradeView


class TradeActionResponse(BaseModel):
    ok: bool = True
    trade: TradeView


class TradeCreatedResponse(BaseModel):
    ok: bool = True
    trade_id: str
    trade: TradeView


class TradeEventResponse(BaseModel):
    seq: int
    actor: str
    kind: str
    payload: dict[str, Any]
    created_at: str
