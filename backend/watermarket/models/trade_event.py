"""Trade event model — append-only audit trail of a negotiation."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from watermarket.database import Base


class TradeEvent(Base):
    __tablename__ = "trade_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trade_id = Column(String(36), ForeignKey("trades.id"), nullable=False, index=True)
    # Version of the trade this event produced; orders the trail
    seq = Column(Integer, nullable=False)
    actor = Column(String(10), nullable=False)  # seller | buyer
    kind = Column(String(20), nullable=False)  # OFFER | COUNTER | ACCEPT | DECLINE
    payload = Column(Text, nullable=False, default="{}")  # JSON string
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("trade_id", "seq", name="uq_trade_event_seq"),
    )

    # Relationships
    trade = relationship("Trade", back_populates="events")
