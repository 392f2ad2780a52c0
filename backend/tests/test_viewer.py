"""Tests for viewer resolution (unit-level, no DB dependency)."""

import pytest
import sys
import os
from types import SimpleNamespace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from watermarket.errors import ForbiddenError
from watermarket.services.trade_machine import Party
from watermarket.services.viewer import ANONYMOUS, require_role, resolve_viewer


@pytest.fixture
def trade():
    return SimpleNamespace(
        seller_user_id="user-seller",
        buyer_user_id="user-buyer",
        seller_token="s" * 43,
        buyer_token="b" * 43,
    )


class TestResolveViewer:
    def test_identity_seller(self, trade):
        v = resolve_viewer(trade, "user-seller")
        assert v.role == "seller"
        assert v.via == "auth"

    def test_identity_buyer(self, trade):
        assert resolve_viewer(trade, "user-buyer").role == "buyer"

    def test_token_seller(self, trade):
        v = resolve_viewer(trade, None, "s" * 43)
        assert v.role == "seller"
        assert v.via == "token"
        assert v.user_id is None

    def test_token_buyer(self, trade):
        assert resolve_viewer(trade, None, "b" * 43).role == "buyer"

    def test_identity_beats_token(self, trade):
        """Signed in as the seller, holding the buyer's link: still the seller."""
        v = resolve_viewer(trade, "user-seller", "b" * 43)
        assert v.role == "seller"
        assert v.via == "auth"

    def test_non_party_identity_falls_back_to_token(self, trade):
        v = resolve_viewer(trade, "someone-else", "b" * 43)
        assert v.role == "buyer"
        assert v.via == "token"

    @pytest.mark.parametrize("token", [None, "", "nope", "s" * 42, "S" * 43])
    def test_unknown(self, trade, token):
        assert resolve_viewer(trade, None, token) == ANONYMOUS

    def test_missing_stored_token_never_matches(self, trade):
        trade.buyer_token = None
        assert resolve_viewer(trade, None, "b" * 43) == ANONYMOUS


class TestRequireRole:
    def test_matching_role(self, trade):
        assert require_role(resolve_viewer(trade, "user-buyer"), "buyer") is Party.BUYER

    def test_wrong_role(self, trade):
        with pytest.raises(ForbiddenError) as exc:
            require_role(resolve_viewer(trade, "user-buyer"), "seller")
        assert exc.value.message == "Only seller can act on this step."

    def test_unknown_viewer(self):
        with pytest.raises(ForbiddenError):
            require_role(ANONYMOUS, "seller")

    def test_unknown_viewer_has_no_party(self):
        assert not ANONYMOUS.is_known
        with pytest.raises(ForbiddenError):
            ANONYMOUS.party
