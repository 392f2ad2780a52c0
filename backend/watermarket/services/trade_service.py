"""Trade service — opening negotiations, loading them, and persisting transitions.

Every transition is written with a compare-and-swap: the UPDATE only matches
the row if its status and version are still what the caller read. A writer
that lost the race updates zero rows and gets a ConflictError instead of
silently overwriting the winner.
"""

import json
import logging
import secrets
import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from watermarket.errors import ConflictError, NotFoundError, ValidationError
from watermarket.models.listing import Listing
from watermarket.models.trade import Trade
from watermarket.models.trade_event import TradeEvent
from watermarket.models.user import User
from watermarket.services.trade_machine import (
    Action,
    Party,
    Transition,
    initial_state,
    plan_transition,
    validate_terms,
)
from watermarket.services.viewer import Viewer, require_role

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Trade was updated by someone else. Refresh and try again."


def generate_token() -> str:
    """A fresh magic-link secret (URL-safe, 256 bits)."""
    return secrets.token_urlsafe(32)


def _token_pair() -> tuple[str, str]:
    seller_token = generate_token()
    buyer_token = generate_token()
    while buyer_token == seller_token:
        buyer_token = generate_token()
    return seller_token, buyer_token


def create_trade(
    db: Session,
    buyer_user_id: str,
    listing_id: str,
    district: str,
    volume_af,
    price_per_af,
    seller_user_id: Optional[str] = None,
    water_type: Optional[str] = None,
    window_label: Optional[str] = None,
) -> Trade:
    """Open a negotiation with the buyer's initial offer.

    The trade starts OFFERED in round 1 with the buyer as last actor, and
    carries a single OFFER event.
    """
    if not listing_id:
        raise ValidationError("listing_id is required", field="listing_id")
    if not district or not district.strip():
        raise ValidationError("district is required", field="district")

    listing = db.query(Listing).filter(Listing.id == listing_id).first()
    if not listing:
        raise NotFoundError("Listing not found")

    seller_user_id = seller_user_id or listing.seller_id
    if seller_user_id == buyer_user_id:
        raise ValidationError("You cannot make an offer on your own listing", field="seller_user_id")
    if not db.query(User).filter(User.id == seller_user_id).first():
        raise NotFoundError("Seller not found")

    terms = validate_terms(price_per_af, volume_af, window_label)
    seller_token, buyer_token = _token_pair()
    state = initial_state()

    trade = Trade(
        id=str(uuid.uuid4()),
        listing_id=listing_id,
        seller_user_id=seller_user_id,
        buyer_user_id=buyer_user_id,
        seller_token=seller_token,
        buyer_token=buyer_token,
        district=district.strip(),
        water_type=water_type or None,
        volume_af=terms.volume_af,
        price_per_af=terms.price_per_af,
        window_label=terms.window_label,
        **state,
    )
    db.add(trade)
    db.flush()

    db.add(TradeEvent(
        trade_id=trade.id,
        seq=state["version"],
        actor=Party.BUYER.role,
        kind="OFFER",
        payload=json.dumps({
            "listing_id": listing_id,
            "district": trade.district,
            "water_type": trade.water_type,
            "volume_af": terms.volume_af,
            "price_per_af": terms.price_per_af,
            "window_label": terms.window_label,
            "round": state["round"],
        }),
    ))
    db.commit()
    db.refresh(trade)
    logger.info("Trade %s opened on listing %s", trade.id, listing_id)
    return trade


def get_trade(db: Session, trade_id: str) -> Trade:
    """Load a trade or raise NotFoundError."""
    trade = db.query(Trade).filter(Trade.id == trade_id).first()
    if not trade:
        raise NotFoundError("Trade not found")
    return trade


def list_user_trades(db: Session, user_id: str, limit: int = 50) -> list[Trade]:
    """Trades where the user is either party, most recently active first."""
    return (
        db.query(Trade)
        .filter(or_(Trade.seller_user_id == user_id, Trade.buyer_user_id == user_id))
        .order_by(Trade.updated_at.desc())
        .limit(limit)
        .all()
    )


def list_trades(
    db: Session,
    status: Optional[str] = None,
    created_from: Optional[date] = None,
    created_to: Optional[date] = None,
) -> list[Trade]:
    """All trades, newest first. The date bounds are inclusive whole days."""
    query = db.query(Trade)
    if status:
        query = query.filter(Trade.status == status)
    if created_from:
        query = query.filter(Trade.created_at >= datetime.combine(created_from, time.min))
    if created_to:
        query = query.filter(Trade.created_at <= datetime.combine(created_to, time.max))
    return query.order_by(Trade.created_at.desc()).all()


def get_events(db: Session, trade_id: str) -> list[TradeEvent]:
    return (
        db.query(TradeEvent)
        .filter(TradeEvent.trade_id == trade_id)
        .order_by(TradeEvent.seq)
        .all()
    )


def compare_and_swap(
    db: Session,
    trade_id: str,
    expected_status: str,
    expected_version: int,
    changes: dict,
) -> bool:
    """UPDATE the trade only if it still has the status and version we read.

    Returns True when exactly one row changed. Does not commit.
    """
    rows = (
        db.query(Trade)
        .filter(
            Trade.id == trade_id,
            Trade.status == expected_status,
            Trade.version == expected_version,
        )
        .update(changes, synchronize_session=False)
    )
    return rows == 1


def apply_action(
    db: Session,
    trade: Trade,
    viewer: Viewer,
    acting_role: str,
    action: Action,
    terms: Optional[dict] = None,
    expected_version: Optional[int] = None,
) -> tuple[Trade, Transition]:
    """Run one negotiation step for `viewer` acting as `acting_role`.

    Steps:
    1. Reject viewers that did not resolve to the endpoint's role
    2. Reject clients holding a stale version
    3. Plan the transition against the state machine
    4. Compare-and-swap the trade row and append the event, in one transaction

    Raises ForbiddenError, ValidationError or ConflictError; on any of them
    nothing has been written.
    """
    party = require_role(viewer, acting_role)
    if expected_version is not None and expected_version != trade.version:
        raise ConflictError(CONFLICT_MESSAGE)

    transition = plan_transition(trade, party, action, terms)
    changes = dict(transition.changes, updated_at=datetime.now(timezone.utc))

    try:
        if not compare_and_swap(db, trade.id, transition.previous_status, transition.expected_version, changes):
            db.rollback()
            logger.info("Trade %s: %s by %s lost a concurrent update", trade.id, action.value, party.role)
            raise ConflictError(CONFLICT_MESSAGE)

        db.add(TradeEvent(
            trade_id=trade.id,
            seq=changes["version"],
            actor=party.role,
            kind=transition.event_kind,
            payload=json.dumps(transition.event_payload),
        ))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(CONFLICT_MESSAGE)

    db.refresh(trade)
    logger.info(
        "Trade %s: %s by %s -> %s (round %s, v%s)",
        trade.id, action.value, party.role, trade.status, trade.round, trade.version,
    )
    return trade, transition
