"""Trades router — opening offers and the seller/buyer negotiation actions.

Every action endpoint accepts either a bearer token (signed-in party) or a
magic-link token (`?token=` or X-Trade-Token). The counterparty is emailed
after the transition commits; that email never affects the response.
"""

import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from watermarket.database import get_db
from watermarket.errors import MarketError
from watermarket.middleware.auth import get_current_user, get_optional_user, get_trade_token
from watermarket.models.trade import Trade
from watermarket.models.user import User
from watermarket.schemas.trade import (
    CounterRequest,
    TradeActionResponse,
    TradeCreate,
    TradeCreatedResponse,
    TradeEnvelope,
    TradeEventResponse,
    TradeView,
)
from watermarket.services import trade_service
from watermarket.services.notifications import Notifier, get_notifier
from watermarket.services.trade_machine import Action
from watermarket.services.viewer import BUYER, SELLER, resolve_viewer

router = APIRouter(prefix="/api/trades", tags=["trades"])


def _trade_to_response(trade: Trade, role: str) -> TradeView:
    """Convert a Trade ORM model to the token-free view for `role`."""
    return TradeView(
        id=trade.id,
        listing_id=trade.listing_id,
        district=trade.district,
        water_type=trade.water_type,
        volume_af=trade.volume_af,
        price_per_af=trade.price_per_af,
        window_label=trade.window_label,
        status=trade.status,
        round=trade.round,
        last_actor=trade.last_actor,
        version=trade.version,
        role=role,
        buyer_sign_status=trade.buyer_sign_status,
        seller_sign_status=trade.seller_sign_status,
        created_at=trade.created_at.isoformat() if trade.created_at else "",
        updated_at=trade.updated_at.isoformat() if trade.updated_at else "",
    )


def _load_for_viewer(db: Session, trade_id: str, user: Optional[User], token: Optional[str]):
    trade = trade_service.get_trade(db, trade_id)
    viewer = resolve_viewer(trade, user.id if user else None, token)
    return trade, viewer


def _act(
    db: Session,
    background_tasks: BackgroundTasks,
    notifier: Notifier,
    trade_id: str,
    user: Optional[User],
    token: Optional[str],
    acting_role: str,
    action: Action,
    terms: Optional[dict] = None,
    version: Optional[int] = None,
) -> TradeActionResponse:
    try:
        trade, viewer = _load_for_viewer(db, trade_id, user, token)
        trade, transition = trade_service.apply_action(
            db, trade, viewer, acting_role, action, terms=terms, expected_version=version
        )
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    background_tasks.add_task(
        notifier.notify_counterparty, trade.id, transition.actor.other.role, transition.event_kind
    )
    return TradeActionResponse(trade=_trade_to_response(trade, viewer.role))


@router.post("", response_model=TradeCreatedResponse)
def create_trade(
    req: TradeCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Open a negotiation: the signed-in user makes an offer as the buyer."""
    try:
        trade = trade_service.create_trade(
            db,
            buyer_user_id=current_user.id,
            listing_id=req.listing_id,
            seller_user_id=req.seller_user_id,
            district=req.district,
            water_type=req.water_type,
            volume_af=req.volume_af,
            price_per_af=req.price_per_af,
            window_label=req.window_label,
        )
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    background_tasks.add_task(notifier.notify_counterparty, trade.id, SELLER, "OFFER")
    return TradeCreatedResponse(trade_id=trade.id, trade=_trade_to_response(trade, BUYER))


@router.get("/mine", response_model=list[TradeView])
def my_trades(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Trades the current user is negotiating, as either party."""
    trades = trade_service.list_user_trades(db, current_user.id)
    return [
        _trade_to_response(t, SELLER if t.seller_user_id == current_user.id else BUYER)
        for t in trades
    ]


@router.get("/{trade_id}", response_model=TradeEnvelope)
def get_trade(
    trade_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
):
    """Read-only view of a trade for one of its parties."""
    try:
        trade, viewer = _load_for_viewer(db, trade_id, user, token)
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not viewer.is_known:
        raise HTTPException(status_code=403, detail="Forbidden")
    return TradeEnvelope(trade=_trade_to_response(trade, viewer.role))


@router.get("/{trade_id}/events", response_model=list[TradeEventResponse])
def get_trade_events(
    trade_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
):
    """The negotiation's audit trail, oldest first."""
    try:
        trade, viewer = _load_for_viewer(db, trade_id, user, token)
    except MarketError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not viewer.is_known:
        raise HTTPException(status_code=403, detail="Forbidden")

    return [
        TradeEventResponse(
            seq=ev.seq,
            actor=ev.actor,
            kind=ev.kind,
            payload=json.loads(ev.payload or "{}"),
            created_at=ev.created_at.isoformat(),
        )
        for ev in trade_service.get_events(db, trade.id)
    ]


@router.post("/{trade_id}/seller/accept", response_model=TradeActionResponse)
def seller_accept(
    trade_id: str,
    background_tasks: BackgroundTasks,
    version: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
    notifier: Notifier = Depends(get_notifier),
):
    """Seller accepts the terms on the table; the buyer is asked to sign."""
    return _act(db, background_tasks, notifier, trade_id, user, token, SELLER, Action.ACCEPT, version=version)


@router.post("/{trade_id}/seller/counter", response_model=TradeActionResponse)
def seller_counter(
    trade_id: str,
    req: CounterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
    notifier: Notifier = Depends(get_notifier),
):
    """Seller proposes new terms (price may not drop below the current offer)."""
    terms = req.model_dump(exclude={"version"})
    return _act(
        db, background_tasks, notifier, trade_id, user, token, SELLER, Action.COUNTER,
        terms=terms, version=req.version,
    )


@router.post("/{trade_id}/seller/decline", response_model=TradeActionResponse)
def seller_decline(
    trade_id: str,
    background_tasks: BackgroundTasks,
    version: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
    notifier: Notifier = Depends(get_notifier),
):
    """Seller walks away from the negotiation."""
    return _act(db, background_tasks, notifier, trade_id, user, token, SELLER, Action.DECLINE, version=version)


@router.post("/{trade_id}/buyer/counter", response_model=TradeActionResponse)
def buyer_counter(
    trade_id: str,
    req: CounterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
    notifier: Notifier = Depends(get_notifier),
):
    """Buyer answers a seller counteroffer with new terms."""
    terms = req.model_dump(exclude={"version"})
    return _act(
        db, background_tasks, notifier, trade_id, user, token, BUYER, Action.COUNTER,
        terms=terms, version=req.version,
    )


@router.post("/{trade_id}/buyer/decline", response_model=TradeActionResponse)
def buyer_decline(
    trade_id: str,
    background_tasks: BackgroundTasks,
    version: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    token: Optional[str] = Depends(get_trade_token),
    notifier: Notifier = Depends(get_notifier),
):
    """Buyer walks away from a seller counteroffer."""
    return _act(db, background_tasks, notifier, trade_id, user, token, BUYER, Action.DECLINE, version=version)
