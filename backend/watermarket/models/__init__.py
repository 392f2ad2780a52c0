"""SQLAlchemy ORM models."""

from watermarket.models.user import User
from watermarket.models.listing import Listing
from watermarket.models.bid import Bid
from watermarket.models.trade import Trade
from watermarket.models.trade_event import TradeEvent

__all__ = [
    "User",
    "Listing",
    "Bid",
    "Trade",
    "TradeEvent",
]
