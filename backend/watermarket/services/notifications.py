"""Notification dispatch — tells the other party what just happened to a trade.

Dispatch runs after the transition has committed and is strictly best effort:
a missing address is skipped, and any failure (lookup, rendering, delivery)
is logged and swallowed so it can never undo or fail the transition.
"""

import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from watermarket.database import SessionLocal
from watermarket.models.listing import Listing
from watermarket.models.trade import Trade
from watermarket.models.user import User
from watermarket.services.mailer import ResendMailer, get_mailer
from watermarket.services.trade_machine import Party, allowed_actions, format_price
from watermarket.templating import app_url, render

logger = logging.getLogger(__name__)


def trade_link(trade: Trade, party: Party, action: Optional[str] = None) -> str:
    """Magic link for `party`, carrying that party's own token."""
    token = trade.seller_token if party is Party.SELLER else trade.buyer_token
    return app_url(f"/t/{trade.id}", role=party.role, token=token, action=action)


def build_message(trade: Trade, recipient: Party, event_kind: str, recipient_name: str, other_name: str) -> dict:
    """Subject, template and links for one event, from the recipient's point of view."""
    actor = recipient.other
    actions = [a.value.lower() for a in allowed_actions(trade.status, recipient)]
    context = {
        "trade": trade,
        "recipient_name": recipient_name,
        "other_name": other_name,
        "actor_role": actor.role,
        "price_label": format_price(trade.price_per_af),
        "view_link": trade_link(trade, recipient),
        "action_links": {a: trade_link(trade, recipient, a) for a in actions},
    }

    if event_kind == "OFFER":
        subject = "New offer received"
        template = "email/new_offer.html.j2"
    elif event_kind == "COUNTER":
        subject = f"{actor.role.capitalize()} sent a counteroffer"
        template = "email/counteroffer.html.j2"
    elif event_kind == "ACCEPT":
        subject = "Seller accepted your offer"
        template = "email/offer_accepted.html.j2"
    elif event_kind == "DECLINE":
        subject = f"{actor.role.capitalize()} declined the offer"
        template = "email/offer_declined.html.j2"
    else:
        raise ValueError(f"No notification for event kind {event_kind!r}")

    return {
        "subject": subject,
        "html": render(template, subject=subject, **context),
        "idempotency_key": f"trade:{trade.id}:{event_kind.lower()}:{trade.round}",
    }


class Notifier:
    """Looks up recipients in its own session and hands rendered mail to the mailer."""

    def __init__(self, session_factory: sessionmaker, mailer: ResendMailer):
        self.session_factory = session_factory
        self.mailer = mailer

    def notify_counterparty(self, trade_id: str, recipient_role: str, event_kind: str) -> bool:
        """Email the counterparty about `event_kind`. Returns True if a message went out."""
        try:
            with self.session_factory() as db:
                return self._notify_counterparty(db, trade_id, recipient_role, event_kind)
        except Exception:
            logger.exception(
                "Notification failed for trade %s (%s -> %s)", trade_id, event_kind, recipient_role
            )
            return False

    def _notify_counterparty(self, db: Session, trade_id: str, recipient_role: str, event_kind: str) -> bool:
        trade = db.get(Trade, trade_id)
        if not trade:
            logger.warning("Notification skipped: trade %s no longer exists", trade_id)
            return False

        recipient = Party.from_role(recipient_role)
        recipient_id = trade.seller_user_id if recipient is Party.SELLER else trade.buyer_user_id
        other_id = trade.buyer_user_id if recipient is Party.SELLER else trade.seller_user_id
        user = db.get(User, recipient_id)
        if not user or not user.email:
            logger.debug("Notification skipped: no contact address for %s on trade %s", recipient.role, trade_id)
            return False
        other = db.get(User, other_id)

        message = build_message(
            trade,
            recipient,
            event_kind,
            recipient_name=user.display_name or recipient.role.capitalize(),
            other_name=(other.display_name if other else None) or recipient.other.role.capitalize(),
        )
        self.mailer.send(
            to=user.email,
            subject=message["subject"],
            html=message["html"],
            idempotency_key=message["idempotency_key"],
        )
        logger.info("Sent %s notification for trade %s to the %s", event_kind, trade_id, recipient.role)
        return True

    def notify_new_bid(self, listing_id: str, bid_id: str, price_per_af: int) -> bool:
        """Email a listing's seller about a new auction bid."""
        try:
            with self.session_factory() as db:
                listing = db.get(Listing, listing_id)
                seller = db.get(User, listing.seller_id) if listing else None
                if not seller or not seller.email:
                    return False
                subject = "New bid on your listing"
                html = render(
                    "email/new_bid.html.j2",
                    subject=subject,
                    listing=listing,
                    recipient_name=seller.display_name,
                    price_per_af=price_per_af,
                    listing_link=app_url(f"/listings/{listing.id}"),
                )
                self.mailer.send(
                    to=seller.email,
                    subject=subject,
                    html=html,
                    idempotency_key=f"bid:{bid_id}",
                )
                return True
        except Exception:
            logger.exception("Bid notification failed for listing %s", listing_id)
            return False


def get_notifier(mailer: ResendMailer = Depends(get_mailer)) -> Notifier:
    """FastAPI dependency; tests override it with an in-memory mailer."""
    return Notifier(SessionLocal, mailer)
