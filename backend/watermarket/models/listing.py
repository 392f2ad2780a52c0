"""Listing model — water offered for sale or auction by a seller."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from watermarket.database import Base


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    district = Column(String(255), nullable=False, index=True)
    water_type = Column(String(50), nullable=True)  # Surface | Groundwater | Transfer | ...
    volume_af = Column(Integer, nullable=False)
    price_per_af = Column(Integer, nullable=False)  # cents
    kind = Column(String(20), nullable=False, default="SELL")  # SELL | AUCTION
    status = Column(String(20), nullable=False, default="ACTIVE")  # ACTIVE | CLOSED
    availability_start = Column(String(32), nullable=True)
    availability_end = Column(String(32), nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    seller = relationship("User", back_populates="listings")
    bids = relationship("Bid", back_populates="listing")
    trades = relationship("Trade", back_populates="listing")
