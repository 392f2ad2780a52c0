"""Viewer resolution — which side of a trade the caller is acting for.

A caller is recognized either by their signed-in identity or by the per-party
magic-link token embedded in emailed links. Identity always wins: somebody
signed in as the seller cannot become the buyer by also presenting a leaked
buyer token.
"""

import secrets
from dataclasses import dataclass
from typing import Optional

from watermarket.errors import ForbiddenError
from watermarket.services.trade_machine import Party

SELLER = "seller"
BUYER = "buyer"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class Viewer:
    role: str  # seller | buyer | unknown
    via: str  # auth | token | none
    user_id: Optional[str] = None

    @property
    def is_known(self) -> bool:
        return self.role != UNKNOWN

    @property
    def party(self) -> Party:
        if not self.is_known:
            raise ForbiddenError("Forbidden")
        return Party.from_role(self.role)


ANONYMOUS = Viewer(role=UNKNOWN, via="none")


def _token_matches(presented: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


def resolve_viewer(
    trade,
    authenticated_user_id: Optional[str] = None,
    presented_token: Optional[str] = None,
) -> Viewer:
    """Resolve the caller's role on `trade`. Never raises.

    Order matters and is enforced explicitly: an authenticated identity that
    matches a party decides the role outright, and tokens are only consulted
    when the identity matches neither party (or there is none).
    """
    if authenticated_user_id:
        if authenticated_user_id == trade.seller_user_id:
            return Viewer(role=SELLER, via="auth", user_id=authenticated_user_id)
        if authenticated_user_id == trade.buyer_user_id:
            return Viewer(role=BUYER, via="auth", user_id=authenticated_user_id)

    if presented_token:
        seller_match = _token_matches(presented_token, trade.seller_token)
        buyer_match = _token_matches(presented_token, trade.buyer_token)
        # Tokens are distinct per trade, so at most one can match
        if seller_match and not buyer_match:
            return Viewer(role=SELLER, via="token")
        if buyer_match and not seller_match:
            return Viewer(role=BUYER, via="token")

    return ANONYMOUS


def require_role(viewer: Viewer, role: str) -> Party:
    """Reject callers that did not resolve to `role` (unknown included)."""
    if not viewer.is_known:
        raise ForbiddenError("Forbidden")
    if viewer.role != role:
        raise ForbiddenError(f"Only {role} can act on this step.")
    return viewer.party
