"""Tests for registration, login and the admin reports."""

import io
import re
from datetime import date, timedelta

from openpyxl import load_workbook

from conftest import auth_headers

from watermarket.services import trade_service


class TestAuth:
    def test_register_and_login(self, client):
        res = client.post(
            "/api/auth/register",
            json={"email": "New@Farm.example", "password": "long-enough", "display_name": "Nia"},
        )
        assert res.status_code == 201
        assert res.json()["email"] == "new@farm.example"
        assert res.json()["role"] == "member"

        res = client.post("/api/auth/login", json={"email": "new@farm.example", "password": "long-enough"})
        assert res.status_code == 200
        token = res.json()["access_token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["display_name"] == "Nia"

    def test_duplicate_email(self, client, seller):
        res = client.post(
            "/api/auth/register",
            json={"email": seller.email, "password": "long-enough", "display_name": "Copy"},
        )
        assert res.status_code == 409

    def test_short_password(self, client):
        res = client.post(
            "/api/auth/register", json={"email": "a@b.example", "password": "short", "display_name": "A"}
        )
        assert res.status_code == 422

    def test_wrong_password(self, client, seller):
        res = client.post("/api/auth/login", json={"email": seller.email, "password": "nope-nope"})
        assert res.status_code == 401

    def test_me_with_bad_token(self, client):
        assert client.get("/api/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401


class TestAdmin:
    def test_trades_report(self, client, trade, admin):
        res = client.get("/api/admin/trades", headers=auth_headers(admin))
        assert res.status_code == 200
        data = res.json()
        assert data["total"] == 1
        assert data["trades"][0]["id"] == trade.id
        assert data["trades"][0]["role"] == "admin"
        assert "seller_token" not in data["trades"][0]

    def test_trades_report_by_status(self, client, trade, admin):
        res = client.get("/api/admin/trades", params={"status": "DECLINED"}, headers=auth_headers(admin))
        assert res.json()["total"] == 0

    def test_members_are_refused(self, client, trade, seller):
        assert client.get("/api/admin/trades", headers=auth_headers(seller)).status_code == 403
        assert client.get("/api/admin/users", headers=auth_headers(seller)).status_code == 403

    def test_users_report(self, client, admin, seller, buyer):
        res = client.get("/api/admin/users", headers=auth_headers(admin))
        assert res.json()["total"] == 3

    def _sheet(self, res):
        wb = load_workbook(io.BytesIO(res.content))
        return [list(row) for row in wb["Trades"].iter_rows(values_only=True)]

    def test_xlsx_export(self, client, trade, admin):
        res = client.get("/api/admin/trades/export", headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert re.search(r'filename="trades-\d{4}-\d{2}-\d{2}\.xlsx"', res.headers["content-disposition"])

        rows = self._sheet(res)
        header = rows[0]
        assert header[:4] == ["Trade ID", "Created At", "Updated At", "Status"]
        assert not any("token" in h.lower() for h in header)
        assert len(rows) == 2

        record = dict(zip(header, rows[1]))
        assert record["Trade ID"] == trade.id
        assert record["Status"] == "OFFERED"
        assert record["District"] == "Westlands"
        assert record["Seller Email"] == "sam@ranch.example"
        assert record["Acre-Feet"] == 100
        assert record["Price / AF (USD)"] == 550
        assert record["Total (USD)"] == 55000

        cells = {v for row in rows for v in row}
        assert trade.seller_token not in cells
        assert trade.buyer_token not in cells

    def test_export_quotes_formula_text(self, client, db, listing, buyer, admin):
        trade_service.create_trade(
            db,
            buyer_user_id=buyer.id,
            listing_id=listing.id,
            district="=HYPERLINK(\"http://evil.example\")",
            water_type="+Surface",
            volume_af=10,
            price_per_af=55000,
            window_label="@SUM(A1)",
        )
        res = client.get("/api/admin/trades/export", headers=auth_headers(admin))
        record = dict(zip(*self._sheet(res)))
        assert record["District"] == "'=HYPERLINK(\"http://evil.example\")"
        assert record["Water Type"] == "'+Surface"
        assert record["Window"] == "'@SUM(A1)"

    def test_export_date_range(self, client, trade, admin):
        today = date.today()
        res = client.get(
            "/api/admin/trades/export",
            params={"from": (today - timedelta(days=1)).isoformat(), "to": (today + timedelta(days=1)).isoformat()},
            headers=auth_headers(admin),
        )
        assert len(self._sheet(res)) == 2

        res = client.get(
            "/api/admin/trades/export",
            params={"to": (today - timedelta(days=2)).isoformat()},
            headers=auth_headers(admin),
        )
        assert len(self._sheet(res)) == 1

    def test_export_requires_admin(self, client, seller):
        assert client.get("/api/admin/trades/export", headers=auth_headers(seller)).status_code == 403


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
