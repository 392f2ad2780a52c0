"""Tests for listings, browsing and auction bids."""

from conftest import auth_headers

from watermarket.services import listing_service


def listing_body(**overrides):
    body = {
        "title": "Madera groundwater",
        "district": "Madera",
        "water_type": "Groundwater",
        "volume_af": 25,
        "price_per_af": 42000,
    }
    body.update(overrides)
    return body


class TestCreateListing:
    def test_create(self, client, seller):
        res = client.post("/api/listings", json=listing_body(), headers=auth_headers(seller))
        assert res.status_code == 201
        data = res.json()
        assert data["seller_id"] == seller.id
        assert data["kind"] == "SELL"
        assert data["status"] == "ACTIVE"

    def test_create_auction(self, client, seller):
        res = client.post("/api/listings", json=listing_body(kind="auction"), headers=auth_headers(seller))
        assert res.status_code == 201
        assert res.json()["kind"] == "AUCTION"

    def test_unknown_kind(self, client, seller):
        res = client.post("/api/listings", json=listing_body(kind="LEASE"), headers=auth_headers(seller))
        assert res.status_code == 400

    def test_non_positive_volume(self, client, seller):
        res = client.post("/api/listings", json=listing_body(volume_af=0), headers=auth_headers(seller))
        assert res.status_code == 422

    def test_requires_sign_in(self, client):
        assert client.post("/api/listings", json=listing_body()).status_code in (401, 403)


class TestBrowse:
    def _seed(self, db, seller):
        for district, price in [("Kern", 30000), ("Westlands", 55000), ("Kern", 45000)]:
            listing_service.create_listing(
                db, seller.id, title=f"{district} water", district=district, volume_af=10, price_per_af=price
            )

    def test_paging(self, client, db, seller):
        self._seed(db, seller)
        res = client.get("/api/listings", params={"page": 1, "page_size": 2})
        data = res.json()
        assert res.status_code == 200
        assert data["total"] == 3
        assert len(data["listings"]) == 2
        assert data["page_size"] == 2

        res = client.get("/api/listings", params={"page": 2, "page_size": 2})
        assert len(res.json()["listings"]) == 1

    def test_page_size_is_clamped(self, client, db, seller):
        self._seed(db, seller)
        data = client.get("/api/listings", params={"page": 0, "page_size": 1000}).json()
        assert data["page"] == 1
        assert data["page_size"] == 50

    def test_sort_and_filter(self, client, db, seller):
        self._seed(db, seller)
        res = client.get(
            "/api/listings",
            params={"district": "Kern", "sort_by": "price_per_af", "sort_dir": "asc"},
        )
        assert [item["price_per_af"] for item in res.json()["listings"]] == [30000, 45000]

    def test_unknown_sort(self, client):
        assert client.get("/api/listings", params={"sort_by": "password"}).status_code == 400

    def test_closed_listings_are_hidden(self, client, db, listing, seller):
        listing_service.update_listing(db, listing.id, seller.id, status="CLOSED")
        assert client.get("/api/listings").json()["total"] == 0

    def test_detail(self, client, listing):
        res = client.get(f"/api/listings/{listing.id}")
        assert res.status_code == 200
        assert res.json()["district"] == "Westlands"
        assert res.json()["highest_bid"] is None

    def test_detail_missing(self, client):
        assert client.get("/api/listings/nope").status_code == 404


class TestUpdateListing:
    def test_seller_edits(self, client, listing, seller):
        res = client.patch(
            f"/api/listings/{listing.id}", json={"price_per_af": 60000}, headers=auth_headers(seller)
        )
        assert res.status_code == 200
        assert res.json()["price_per_af"] == 60000
        assert res.json()["title"] == listing.title

    def test_other_user_cannot_edit(self, client, listing, buyer):
        res = client.patch(f"/api/listings/{listing.id}", json={"title": "Mine now"}, headers=auth_headers(buyer))
        assert res.status_code == 403

    def test_invalid_status(self, client, listing, seller):
        res = client.patch(f"/api/listings/{listing.id}", json={"status": "SOLD"}, headers=auth_headers(seller))
        assert res.status_code == 400


class TestBids:
    def test_bid_notifies_seller(self, client, mailer, auction, buyer, seller):
        res = client.post(
            f"/api/listings/{auction.id}/bids", json={"price_per_af": 31000}, headers=auth_headers(buyer)
        )
        assert res.status_code == 201
        assert res.json()["bidder_id"] == buyer.id
        assert mailer.sent[-1]["to"] == seller.email
        assert mailer.sent[-1]["subject"] == "New bid on your listing"

        assert client.get(f"/api/listings/{auction.id}").json()["highest_bid"] == 31000

    def test_must_beat_highest_bid(self, client, auction, buyer, outsider):
        client.post(f"/api/listings/{auction.id}/bids", json={"price_per_af": 35000}, headers=auth_headers(buyer))
        res = client.post(
            f"/api/listings/{auction.id}/bids", json={"price_per_af": 35000}, headers=auth_headers(outsider)
        )
        assert res.status_code == 400

        res = client.post(
            f"/api/listings/{auction.id}/bids", json={"price_per_af": 36000}, headers=auth_headers(outsider)
        )
        assert res.status_code == 201

        bids = client.get(f"/api/listings/{auction.id}/bids").json()
        assert [b["price_per_af"] for b in bids] == [36000, 35000]

    def test_below_asking(self, client, auction, buyer):
        res = client.post(
            f"/api/listings/{auction.id}/bids", json={"price_per_af": 29999}, headers=auth_headers(buyer)
        )
        assert res.status_code == 400

    def test_seller_cannot_bid(self, client, auction, seller):
        res = client.post(
            f"/api/listings/{auction.id}/bids", json={"price_per_af": 40000}, headers=auth_headers(seller)
        )
        assert res.status_code == 400

    def test_fixed_price_listing_takes_no_bids(self, client, mailer, listing, buyer):
        res = client.post(
            f"/api/listings/{listing.id}/bids", json={"price_per_af": 60000}, headers=auth_headers(buyer)
        )
        assert res.status_code == 400
        assert mailer.sent == []

    def test_closed_auction(self, client, db, auction, seller, buyer):
        listing_service.update_listing(db, auction.id, seller.id, status="closed")
        res = client.post(
            f"/api/listings/{auction.id}/bids", json={"price_per_af": 40000}, headers=auth_headers(buyer)
        )
        assert res.status_code == 400
