"""Listings router — create, browse, edit, and bid on water listings."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from watermarket.database import get_db
from watermarket.errors import MarketError
from watermarket.middleware.auth import get_current_user
from watermarket.models.bid import Bid
from watermarket.models.listing import Listing
from watermarket.models.user import User
from watermarket.schemas.listing import (
    BidCreate,
    BidResponse,
    ListingCreate,
    ListingListResponse,
    ListingResponse,
    ListingUpdate,
)
from watermarket.services import listing_service
from watermarket.services.notifications import Notifier, get_notifier

router = APIRouter(prefix="/api/listings", tags=["listings"])


def _listing_to_response(listing: Listing, highest_bid: Optional[int] = None) -> ListingResponse:
    return ListingResponse(
        id=listing.id,
        seller_id=listing.seller_id,
        title=listing.title,
        description=listing.description,
        district=listing.district,
        water_type=listing.water_type,
        volume_af=listing.volume_af,
        price_per_af=listing.price_per_af,
        kind=listing.kind,
        status=listing.status,
        availability_start=listing.availability_start,
        availability_end=listing.availability_end,
        highest_bid=highest_bid,
        created_at=listing.created_at.isoformat() if listing.created_at else "",
    )


def _bid_to_response(bid: Bid) -> BidResponse:
    return BidResponse(
        id=bid.id,
        listing_id=bid.listing_id,
        bidder_id=bid.bidder_id,
        price_per_af=bid.price_per_af,
        created_at=bid.created_at.isoformat(),
    )


@router.post("", response_model=ListingResponse, status_code=201)
def create_listing(
    req: ListingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a listing owned by the current user."""
    try:
        listing = listing_service.create_listing(db, current_user.id, **req.model_dump())
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _listing_to_response(listing)


@router.get("", response_model=ListingListResponse)
def list_listings(
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    sort_by: str = Query("created_at"),
    sort_dir: str = Query("desc"),
    district: Optional[str] = Query(None),
    water_type: Optional[str] = Query(None),
    kind: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Browse active listings (public)."""
    try:
        listings, total, page, page_size = listing_service.list_listings(
            db,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_dir=sort_dir,
            district=district,
            water_type=water_type,
            kind=kind,
        )
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ListingListResponse(
        listings=[_listing_to_response(item) for item in listings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{listing_id}", response_model=ListingResponse)
def get_listing(listing_id: str, db: Session = Depends(get_db)):
    """Listing detail, with the highest bid for auctions."""
    try:
        listing = listing_service.get_listing(db, listing_id)
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    top = listing_service.highest_bid(db, listing.id) if listing.kind == "AUCTION" else None
    return _listing_to_response(listing, top)


@router.patch("/{listing_id}", response_model=ListingResponse)
def update_listing(
    listing_id: str,
    req: ListingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Edit a listing (its seller only)."""
    try:
        listing = listing_service.update_listing(
            db, listing_id, current_user.id, **req.model_dump(exclude_unset=True)
        )
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _listing_to_response(listing)


@router.post("/{listing_id}/bids", response_model=BidResponse, status_code=201)
def place_bid(
    listing_id: str,
    req: BidCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Bid on an auction listing; must beat the current highest bid."""
    try:
        bid = listing_service.place_bid(db, listing_id, current_user.id, req.price_per_af)
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    background_tasks.add_task(notifier.notify_new_bid, listing_id, bid.id, bid.price_per_af)
    return _bid_to_response(bid)


@router.get("/{listing_id}/bids", response_model=list[BidResponse])
def list_bids(listing_id: str, db: Session = Depends(get_db)):
    """Bids on a listing, highest first."""
    try:
        bids = listing_service.list_bids(db, listing_id)
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return [_bid_to_response(b) for b in bids]
