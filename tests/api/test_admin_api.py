"""
Tests for the admin API, the partner portal and the ops endpoints.
"""
from datetime import timedelta

import pytest

from affiliate_core.core.security import create_access_token
from affiliate_core.models import Conversion

ADMIN = "/v1/admin/affiliate"


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def partner_headers(partner):
    return _bearer(create_access_token("partner-user", "partner", partner_id=partner.id))


class TestAuth:

    def test_missing_token(self, client):
        assert client.get(f"{ADMIN}/partners").status_code == 401

    def test_garbage_token(self, client):
        assert client.get(f"{ADMIN}/partners", headers=_bearer("not-a-jwt")).status_code == 401

    def test_expired_token(self, client):
        token = create_access_token("admin-user", "admin", expires_delta=timedelta(minutes=-1))
        response = client.get(f"{ADMIN}/partners", headers=_bearer(token))
        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"

    def test_partner_token_cannot_use_admin(self, client, partner_headers):
        assert client.get(f"{ADMIN}/partners", headers=partner_headers).status_code == 403

    def test_unbound_partner_token(self, client):
        token = create_access_token("partner-user", "partner")
        assert client.get("/v1/partner/me", headers=_bearer(token)).status_code == 403


class TestAdminPartnersAndLinks:

    def test_create_partner_returns_secret_once(self, client, admin_headers):
        response = client.post(
            f"{ADMIN}/partners",
            json={"company_name": "Volt Co", "commission_rate": 8},
            headers=admin_headers,
        )
        assert response.status_code == 200
        created = response.json()["partner"]
        assert created["slug"] == "volt-co"
        assert len(created["api_secret"]) == 64

        fetched = client.get(f"{ADMIN}/partners/{created['id']}", headers=admin_headers).json()["partner"]
        assert "api_secret" not in fetched
        assert fetched["has_api_secret"] is True

    def test_validation_error_shape(self, client, admin_headers):
        response = client.post(
            f"{ADMIN}/partners",
            json={"company_name": "Bad", "commission_rate": 150},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unknown_partner_is_404(self, client, admin_headers):
        response = client.get(f"{ADMIN}/partners/missing", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_create_link(self, client, admin_headers, partner, product):
        response = client.post(
            f"{ADMIN}/links",
            json={"partner_id": partner.id, "product_id": product.id, "custom_params": {"sub": "blog"}},
            headers=admin_headers,
        )
        assert response.status_code == 200
        link = response.json()["link"]
        assert len(link["short_code"]) == 8
        assert link["short_url"].endswith(f"/go/{link['short_code']}")
        assert "sub=blog" in link["tracking_url"]

    def test_link_stats_and_clicks(self, client, admin_headers, link, make_click):
        make_click(link)
        make_click(link, is_bot=True)

        stats = client.get(f"{ADMIN}/links/{link.id}/stats", headers=admin_headers).json()
        clicks = client.get(f"{ADMIN}/links/{link.id}/clicks", headers=admin_headers).json()
        human = client.get(
            f"{ADMIN}/links/{link.id}/clicks", params={"include_bots": "false"}, headers=admin_headers,
        ).json()

        assert stats["total_clicks"] == 1
        assert clicks["count"] == 2
        assert human["count"] == 1


class TestAdminConversionsAndPayouts:

    def test_manual_conversion_then_approve(self, client, admin_headers, partner):
        created = client.post(
            f"{ADMIN}/conversions/manual",
            json={"partner_id": partner.id, "order_id": "PHONE-1", "amount": "80.00"},
            headers=admin_headers,
        ).json()
        assert created["created"] is True
        conversion_id = created["conversion"]["id"]
        assert created["conversion"]["commission_cents"] == 800

        approved = client.post(
            f"{ADMIN}/conversions/{conversion_id}/approve", json={"notes": "ok"}, headers=admin_headers,
        )
        assert approved.json()["conversion"]["conversion_status"] == "approved"

        again = client.post(f"{ADMIN}/conversions/{conversion_id}/approve", json={}, headers=admin_headers)
        assert again.status_code == 400
        assert again.json()["error"] == "conflict"

    def test_manual_conversion_rejects_non_positive_amount(self, client, admin_headers, partner):
        response = client.post(
            f"{ADMIN}/conversions/manual",
            json={"partner_id": partner.id, "order_id": "PHONE-2", "amount": "0"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_amount"

    def test_payout_flow(self, client, db, admin_headers, partner, make_conversion):
        ids = [make_conversion(partner).id for _ in range(3)]

        created = client.post(f"{ADMIN}/payouts/", json={"partner_id": partner.id}, headers=admin_headers)
        assert created.status_code == 200
        payout = created.json()["payout"]
        assert payout["total_commission_cents"] == 4500
        assert payout["total_conversions"] == 3

        detail = client.get(f"{ADMIN}/payouts/{payout['id']}", headers=admin_headers).json()
        assert sorted(c["id"] for c in detail["conversions"]) == sorted(ids)

        completed = client.post(
            f"{ADMIN}/payouts/{payout['id']}/complete",
            json={"transaction_reference": "WIRE-77"},
            headers=admin_headers,
        )
        assert completed.json()["payout"]["status"] == "completed"
        db.expire_all()
        assert db.query(Conversion).filter(Conversion.payout_status == "paid").count() == 3

        twice = client.post(f"{ADMIN}/payouts/{payout['id']}/complete", json={}, headers=admin_headers)
        assert twice.status_code == 400

    def test_payout_without_eligible_conversions(self, client, admin_headers, partner):
        response = client.post(f"{ADMIN}/payouts/", json={"partner_id": partner.id}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "no_eligible_conversions"


class TestAdminInsights:

    def test_analytics_overview(self, client, admin_headers):
        response = client.get(f"{ADMIN}/analytics", params={"period": "7d"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["overview"]["total_clicks"] == 0

    def test_analytics_bad_period(self, client, admin_headers):
        response = client.get(f"{ADMIN}/analytics", params={"period": "fortnight"}, headers=admin_headers)
        assert response.status_code == 400

    def test_block_ip(self, client, admin_headers):
        response = client.post(
            f"{ADMIN}/fraud/blocked-ips", json={"ip_address": "198.51.100.9", "reason": "abuse"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert client.delete(f"{ADMIN}/fraud/blocked-ips/198.51.100.9", headers=admin_headers).status_code == 200
        assert client.delete(f"{ADMIN}/fraud/blocked-ips/198.51.100.9", headers=admin_headers).status_code == 404

    def test_run_job(self, client, admin_headers):
        response = client.post(f"{ADMIN}/jobs/expire_links", headers=admin_headers)
        assert response.json() == {"job": "expire_links", "results": {"expired_links": 0}}

    def test_unknown_job(self, client, admin_headers):
        assert client.post(f"{ADMIN}/jobs/reticulate_splines", headers=admin_headers).status_code == 404


class TestPartnerPortal:

    def test_me_is_scoped_to_token(self, client, partner, partner_headers):
        response = client.get("/v1/partner/me", headers=partner_headers)
        assert response.status_code == 200
        assert response.json()["partner"]["id"] == partner.id

    def test_query_param_cannot_escape_scope(self, client, partner, partner_headers, make_partner, make_conversion):
        other = make_partner()
        make_conversion(other)
        make_conversion(partner)

        response = client.get(
            "/v1/partner/conversions", params={"partner_id": other.id}, headers=partner_headers,
        )
        conversions = response.json()["conversions"]
        assert [c["partner_id"] for c in conversions] == [partner.id]

    def test_admin_must_name_partner(self, client, admin_headers, partner):
        assert client.get("/v1/partner/balance", headers=admin_headers).status_code == 400
        response = client.get("/v1/partner/balance", params={"partner_id": partner.id}, headers=admin_headers)
        assert response.json()["partner_id"] == partner.id

    def test_partner_creates_own_link(self, client, partner, product, partner_headers):
        response = client.post("/v1/partner/links", json={"product_id": product.id}, headers=partner_headers)
        assert response.status_code == 200
        assert response.json()["link"]["partner_id"] == partner.id


class TestOps:

    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"ok": True, "service": "affiliate-core"}

    def test_readyz(self, client):
        assert client.get("/readyz").json()["database"] == "ok"

    def test_metrics(self, client, link):
        client.get(f"/go/{link.short_code}", follow_redirects=False)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "affiliate_clicks_total" in response.text

    def test_request_id_header(self, client):
        response = client.get("/healthz", headers={"X-Request-ID": "req-123"})
        assert response.headers["x-request-id"] == "req-123"

    def test_oversized_request_id_is_replaced(self, client):
        response = client.get("/healthz", headers={"X-Request-ID": "x" * 500})
        assert response.headers["x-request-id"] != "x" * 500
