"""Admin reporting schemas."""

from pydantic import BaseModel

from watermarket.schemas.auth import UserResponse
from watermarket.schemas.trade import TradeView


class AdminTradeListResponse(BaseModel):
    trades: list[TradeView]
    total: int


class AdminUserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
