"""Negotiation state machine — who may respond to a trade, and what each response changes.

The functions here are pure: they read a trade snapshot and return the
changes a transition would make. Persisting them (atomically, with the audit
event) is trade_service's job.

Rule of thumb: the party that did NOT make the most recent offer is the only
party entitled to respond to it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from watermarket.errors import ForbiddenError, ValidationError


class TradeStatus(str, Enum):
    OFFERED = "OFFERED"
    COUNTERED_BY_BUYER = "COUNTERED_BY_BUYER"
    COUNTERED_BY_SELLER = "COUNTERED_BY_SELLER"
    ACCEPTED_PENDING_BUYER_SIGNATURE = "ACCEPTED_PENDING_BUYER_SIGNATURE"
    DECLINED = "DECLINED"


class Party(str, Enum):
    SELLER = "SELLER"
    BUYER = "BUYER"

    @property
    def role(self) -> str:
        """Lower-case role name used by viewers, events and URLs."""
        return self.value.lower()

    @property
    def other(self) -> "Party":
        return Party.BUYER if self is Party.SELLER else Party.SELLER

    @classmethod
    def from_role(cls, role: str) -> "Party":
        return cls(role.upper())


class Action(str, Enum):
    ACCEPT = "ACCEPT"
    COUNTER = "COUNTER"
    DECLINE = "DECLINE"


# Statuses that await a response, and the only party allowed to give it
AWAITING_PARTY = {
    TradeStatus.OFFERED: Party.SELLER,
    TradeStatus.COUNTERED_BY_BUYER: Party.SELLER,
    TradeStatus.COUNTERED_BY_SELLER: Party.BUYER,
}

TRANSITIONS = {
    (TradeStatus.OFFERED, Party.SELLER, Action.ACCEPT): TradeStatus.ACCEPTED_PENDING_BUYER_SIGNATURE,
    (TradeStatus.OFFERED, Party.SELLER, Action.COUNTER): TradeStatus.COUNTERED_BY_SELLER,
    (TradeStatus.OFFERED, Party.SELLER, Action.DECLINE): TradeStatus.DECLINED,
    (TradeStatus.COUNTERED_BY_BUYER, Party.SELLER, Action.ACCEPT): TradeStatus.ACCEPTED_PENDING_BUYER_SIGNATURE,
    (TradeStatus.COUNTERED_BY_BUYER, Party.SELLER, Action.COUNTER): TradeStatus.COUNTERED_BY_SELLER,
    (TradeStatus.COUNTERED_BY_BUYER, Party.SELLER, Action.DECLINE): TradeStatus.DECLINED,
    (TradeStatus.COUNTERED_BY_SELLER, Party.BUYER, Action.COUNTER): TradeStatus.COUNTERED_BY_BUYER,
    (TradeStatus.COUNTERED_BY_SELLER, Party.BUYER, Action.DECLINE): TradeStatus.DECLINED,
}

# Actions that propose terms and therefore open a new round
ROUND_OPENING_ACTIONS = {Action.COUNTER}

NOT_AWAITING_MESSAGE = "Trade is not awaiting a counter/decision."


def initial_state() -> dict:
    """Negotiation fields of a freshly created trade (the buyer's opening offer)."""
    return {
        "status": TradeStatus.OFFERED.value,
        "round": 1,
        "last_actor": Party.BUYER.value,
        "version": 1,
    }


def entitled_party(status: str) -> Optional[Party]:
    """The party allowed to respond to a trade in `status`, or None if nobody is."""
    try:
        return AWAITING_PARTY.get(TradeStatus(status))
    except ValueError:
        return None


def allowed_actions(status: str, party: Party) -> list[Action]:
    """Actions `party` may take right now, in display order."""
    try:
        current = TradeStatus(status)
    except ValueError:
        return []
    return [a for a in Action if (current, party, a) in TRANSITIONS]


def next_status(status: str, party: Party, action: Action) -> TradeStatus:
    """Look up the transition table, raising ForbiddenError for anything not in it."""
    entitled = entitled_party(status)
    if entitled is None:
        raise ForbiddenError(NOT_AWAITING_MESSAGE)
    if party is not entitled:
        raise ForbiddenError(f"Only {entitled.role} can act on this step.")

    nxt = TRANSITIONS.get((TradeStatus(status), party, action))
    if nxt is None:
        raise ForbiddenError(f"The {party.role} cannot {action.value.lower()} at this step.")
    return nxt


@dataclass
class Terms:
    price_per_af: int  # cents
    volume_af: int
    window_label: Optional[str] = None


def _positive_int(name: str, value) -> int:
    if value is None or value == "":
        raise ValidationError(f"{name} is required", field=name)
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a whole number", field=name)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{name} must be a whole number", field=name)
        value = int(value)
    elif not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except ValueError:
            raise ValidationError(f"{name} must be a whole number", field=name)
    if value <= 0:
        raise ValidationError(f"{name} must be greater than 0", field=name)
    return value


def validate_terms(price_per_af, volume_af, window_label=None) -> Terms:
    """Normalize counter terms: both numbers required, integral and positive."""
    price = _positive_int("price_per_af", price_per_af)
    volume = _positive_int("volume_af", volume_af)
    label = window_label.strip() if isinstance(window_label, str) else None
    return Terms(price_per_af=price, volume_af=volume, window_label=label or None)


def format_price(cents: int) -> str:
    return f"${cents / 100:,.2f}/AF"


@dataclass
class Transition:
    """Everything one accepted action changes on a trade."""

    action: Action
    actor: Party
    previous_status: str
    expected_version: int
    next_status: TradeStatus
    changes: dict = field(default_factory=dict)
    event_payload: dict = field(default_factory=dict)

    @property
    def event_kind(self) -> str:
        return self.action.value


def plan_transition(trade, party: Party, action: Action, terms: Optional[dict] = None) -> Transition:
    """Validate `party` doing `action` on `trade` and compute the resulting changes.

    Entitlement is checked before the terms, so a party that may not act never
    learns anything from validation messages.

    Raises:
        ForbiddenError: the party or the current status does not permit the action.
        ValidationError: counter terms are missing, non-positive, or (for the
            seller) below the price currently on the table.
    """
    nxt = next_status(trade.status, party, action)

    changes = {
        "status": nxt.value,
        "last_actor": party.value,
        "version": trade.version + 1,
    }
    payload = {"previous_status": trade.status, "round": trade.round}

    if action in ROUND_OPENING_ACTIONS:
        terms = terms or {}
        validated = validate_terms(
            terms.get("price_per_af"),
            terms.get("volume_af"),
            terms.get("window_label"),
        )
        if party is Party.SELLER and validated.price_per_af < trade.price_per_af:
            raise ValidationError(
                f"Counter price must be at least the current offer ({format_price(trade.price_per_af)}).",
                field="price_per_af",
            )
        new_round = trade.round + 1
        changes.update(
            price_per_af=validated.price_per_af,
            volume_af=validated.volume_af,
            window_label=validated.window_label,
            round=new_round,
        )
        payload.update(
            price_per_af=validated.price_per_af,
            volume_af=validated.volume_af,
            window_label=validated.window_label,
            round=new_round,
        )
    elif action is Action.ACCEPT:
        # Hand-off to the signature flow; the buyer signs first
        changes["buyer_sign_status"] = "PENDING"
        changes["seller_sign_status"] = "WAITING"

    return Transition(
        action=action,
        actor=party,
        previous_status=trade.status,
        expected_version=trade.version,
        next_status=nxt,
        changes=changes,
        event_payload=payload,
    )
