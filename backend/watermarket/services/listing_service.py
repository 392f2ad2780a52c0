"""Listing service — listing CRUD, browsing, and naive auction bids."""

import uuid
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from watermarket.config import settings
from watermarket.errors import ForbiddenError, NotFoundError, ValidationError
from watermarket.models.bid import Bid
from watermarket.models.listing import Listing

LISTING_KINDS = ("SELL", "AUCTION")
LISTING_STATUSES = ("ACTIVE", "CLOSED")
SORTABLE_FIELDS = {
    "created_at": Listing.created_at,
    "price_per_af": Listing.price_per_af,
    "volume_af": Listing.volume_af,
    "district": Listing.district,
}


def create_listing(db: Session, seller_id: str, **fields) -> Listing:
    """Create an ACTIVE listing owned by `seller_id`."""
    kind = (fields.pop("kind", None) or "SELL").upper()
    if kind not in LISTING_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(LISTING_KINDS)}", field="kind")

    listing = Listing(
        id=str(uuid.uuid4()),
        seller_id=seller_id,
        kind=kind,
        status="ACTIVE",
        **fields,
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing


def get_listing(db: Session, listing_id: str) -> Listing:
    listing = db.query(Listing).filter(Listing.id == listing_id).first()
    if not listing:
        raise NotFoundError("Listing not found")
    return listing


def list_listings(
    db: Session,
    page: int = 1,
    page_size: Optional[int] = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    district: Optional[str] = None,
    water_type: Optional[str] = None,
    kind: Optional[str] = None,
) -> tuple[list[Listing], int, int, int]:
    """Page through ACTIVE listings.

    Out-of-range paging values are clamped rather than rejected, matching how
    the browse page links are built. Returns (listings, total, page, page_size).
    """
    page = max(1, page)
    page_size = page_size or settings.LISTINGS_DEFAULT_PAGE_SIZE
    page_size = min(settings.LISTINGS_MAX_PAGE_SIZE, max(1, page_size))
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(
            f"sort_by must be one of {', '.join(SORTABLE_FIELDS)}", field="sort_by"
        )
    column = SORTABLE_FIELDS[sort_by]
    order = column.asc() if sort_dir == "asc" else column.desc()

    query = db.query(Listing).filter(Listing.status == "ACTIVE")
    if district:
        query = query.filter(Listing.district == district)
    if water_type:
        query = query.filter(Listing.water_type == water_type)
    if kind:
        query = query.filter(Listing.kind == kind.upper())

    total = query.count()
    listings = (
        query.order_by(order, Listing.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return listings, total, page, page_size


def update_listing(db: Session, listing_id: str, actor_id: str, **changes) -> Listing:
    """Apply the non-None `changes`; only the listing's seller may edit it."""
    listing = get_listing(db, listing_id)
    if listing.seller_id != actor_id:
        raise ForbiddenError("Only the seller can edit this listing")

    status = changes.get("status")
    if status is not None:
        status = status.upper()
        if status not in LISTING_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(LISTING_STATUSES)}", field="status"
            )
        changes["status"] = status

    for key, value in changes.items():
        if value is not None:
            setattr(listing, key, value)
    db.commit()
    db.refresh(listing)
    return listing


def highest_bid(db: Session, listing_id: str) -> Optional[int]:
    return (
        db.query(func.max(Bid.price_per_af))
        .filter(Bid.listing_id == listing_id)
        .scalar()
    )


def place_bid(db: Session, listing_id: str, bidder_id: str, price_per_af: int) -> Bid:
    """Record a bid if it beats the current highest one.

    This is a plain read-then-insert check; two simultaneous bids at the same
    price can both land.
    """
    listing = get_listing(db, listing_id)
    if listing.kind != "AUCTION":
        raise ValidationError("This listing does not take bids")
    if listing.status != "ACTIVE":
        raise ValidationError("This auction is closed")
    if listing.seller_id == bidder_id:
        raise ValidationError("You cannot bid on your own listing")
    if price_per_af <= 0:
        raise ValidationError("price_per_af must be greater than 0", field="price_per_af")
    if price_per_af < listing.price_per_af:
        raise ValidationError("Bid must be at least the asking price", field="price_per_af")

    current = highest_bid(db, listing_id)
    if current is not None and price_per_af <= current:
        raise ValidationError(
            f"Bid must be higher than the current highest bid ({current} cents/AF)",
            field="price_per_af",
        )

    bid = Bid(
        id=str(uuid.uuid4()),
        listing_id=listing_id,
        bidder_id=bidder_id,
        price_per_af=price_per_af,
    )
    db.add(bid)
    db.commit()
    db.refresh(bid)
    return bid


def list_bids(db: Session, listing_id: str) -> list[Bid]:
    get_listing(db, listing_id)
    return (
        db.query(Bid)
        .filter(Bid.listing_id == listing_id)
        .order_by(Bid.price_per_af.desc(), Bid.created_at)
        .all()
    )
