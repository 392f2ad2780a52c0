"""Trade model — one buyer/seller negotiation thread over a listing."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from watermarket.database import Base


class Trade(Base):
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)

    # Parties and their magic-link secrets; none of these change after creation
    seller_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    buyer_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    seller_token = Column(String(64), nullable=False, unique=True)
    buyer_token = Column(String(64), nullable=False, unique=True)

    # Terms, replaced wholesale on each counter
    district = Column(String(255), nullable=False)
    water_type = Column(String(50), nullable=True)
    volume_af = Column(Integer, nullable=False)
    price_per_af = Column(Integer, nullable=False)  # cents
    window_label = Column(String(255), nullable=True)

    # OFFERED | COUNTERED_BY_BUYER | COUNTERED_BY_SELLER | ACCEPTED_PENDING_BUYER_SIGNATURE | DECLINED
    status = Column(String(40), nullable=False, default="OFFERED")
    round = Column(Integer, nullable=False, default=1)
    last_actor = Column(String(10), nullable=False, default="BUYER")  # SELLER | BUYER
    version = Column(Integer, nullable=False, default=1)

    buyer_sign_status = Column(String(20), nullable=True)
    seller_sign_status = Column(String(20), nullable=True)

    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    listing = relationship("Listing", back_populates="trades")
    seller = relationship("User", foreign_keys=[seller_user_id])
    buyer = relationship("User", foreign_keys=[buyer_user_id])
    events = relationship(
        "TradeEvent",
        back_populates="trade",
        order_by="TradeEvent.seq",
    )
