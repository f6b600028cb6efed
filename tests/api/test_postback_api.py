"""
Tests for the postback endpoints: JSON/form POST, pixel GET, signature
checks, idempotent replays and the partner API audit log.
"""
import json
from urllib.parse import urlencode

import pytest

from affiliate_core.config import settings
from affiliate_core.models import Conversion, PartnerApiLog
from affiliate_core.security.signatures import compute_signature

POSTBACK = "/v1/affiliate/postback"


def _signed(partner, payload: dict):
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "x-partner-id": partner.id,
        "x-signature": compute_signature("s3cret-key", body),
    }
    return body, headers


class TestPostbackPost:

    def test_signed_postback_creates_conversion(self, client, db, partner, link, make_click):
        click = make_click(link)
        body, headers = _signed(partner, {"orderId": "ORD-500", "amount": "200.00", "clickId": click.id})

        response = client.post(POSTBACK, content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        conversion = db.query(Conversion).filter(Conversion.id == data["conversionId"]).one()
        assert conversion.order_id == "ORD-500"
        assert conversion.sale_amount_cents == 20000
        assert conversion.commission_cents == 2000
        assert conversion.click_id == click.id
        assert conversion.conversion_status == "pending"

    def test_replay_returns_identical_body(self, client, db, partner):
        body, headers = _signed(partner, {"order_id": "ORD-501", "amount": "10.00"})

        first = client.post(POSTBACK, content=body, headers=headers)
        second = client.post(POSTBACK, content=body, headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()
        assert db.query(Conversion).filter(Conversion.order_id == "ORD-501").count() == 1

    def test_bad_signature_is_rejected_without_conversion(self, client, db, partner):
        body, headers = _signed(partner, {"order_id": "ORD-502", "amount": "10.00"})
        headers["x-signature"] = compute_signature("wrong-secret", body)

        response = client.post(POSTBACK, content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_signature"
        assert db.query(Conversion).filter(Conversion.order_id == "ORD-502").count() == 0

    def test_unsigned_rejected_when_signatures_required(self, client, db, partner, monkeypatch):
        monkeypatch.setattr(settings, "postback_allow_unsigned", False)
        response = client.post(
            POSTBACK,
            json={"order_id": "ORD-503", "amount": "10.00"},
            headers={"x-partner-id": partner.id},
        )
        assert response.status_code == 401
        assert db.query(Conversion).count() == 0

    def test_form_encoded_body(self, client, db, partner):
        body = urlencode({"transaction_id": "TX-9", "sale_amount": "50.00"}).encode("utf-8")
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "x-partner-id": partner.id,
            "x-signature": "sha256=" + compute_signature("s3cret-key", body),
        }
        response = client.post(POSTBACK, content=body, headers=headers)
        assert response.status_code == 200
        assert db.query(Conversion).filter(Conversion.order_id == "TX-9").one().commission_cents == 500

    def test_missing_order_id(self, client, partner):
        body, headers = _signed(partner, {"amount": "10.00"})
        response = client.post(POSTBACK, content=body, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "order_id_required"

    def test_bad_amount(self, client, partner):
        body, headers = _signed(partner, {"order_id": "ORD-504", "amount": "ten dollars"})
        response = client.post(POSTBACK, content=body, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_amount"

    @pytest.mark.parametrize("amount", ["1e30", "99999999999999999999"])
    def test_oversized_amount_is_rejected_and_audited(self, client, db, partner, amount):
        body, headers = _signed(partner, {"order_id": "ORD-507", "amount": amount})
        response = client.post(POSTBACK, content=body, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_amount"
        assert db.query(PartnerApiLog).count() == 1
        assert db.query(Conversion).count() == 0

    def test_unknown_partner(self, client):
        response = client.post(POSTBACK, json={"order_id": "ORD-505"}, headers={"x-partner-id": "nobody"})
        assert response.status_code == 401
        assert response.json()["error"] == "unknown_partner"

    def test_every_call_is_audited(self, client, db, partner):
        body, headers = _signed(partner, {"order_id": "ORD-506", "amount": "10.00"})
        client.post(POSTBACK, content=body, headers=headers)
        headers["x-signature"] = "0" * 64
        client.post(POSTBACK, content=body, headers=headers)

        logs = db.query(PartnerApiLog).all()
        assert sorted(log.response_status for log in logs) == [200, 401]
        assert all(log.request_method == "POST" for log in logs)
        assert all("ORD-506" in log.request_payload for log in logs)
        assert [log.partner_id for log in logs if log.response_status == 200] == [partner.id]

    def test_rate_limited(self, client, partner, monkeypatch):
        monkeypatch.setattr(settings, "postback_rate_limit_per_minute", 2)
        statuses = []
        for i in range(3):
            body, headers = _signed(partner, {"order_id": f"RL-{i}", "amount": "1.00"})
            statuses.append(client.post(POSTBACK, content=body, headers=headers).status_code)
        assert statuses == [200, 200, 429]


class TestPostbackPixel:

    def test_pixel_success(self, client, db, partner):
        query = urlencode({"order_id": "PIX-1", "amount": "25.00", "partner_id": partner.id})
        response = client.get(
            f"{POSTBACK}?{query}",
            headers={"x-signature": compute_signature("s3cret-key", query)},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert response.content.startswith(b"GIF89a")
        assert db.query(Conversion).filter(Conversion.order_id == "PIX-1").count() == 1

    def test_pixel_error_is_json(self, client, partner):
        response = client.get(POSTBACK, params={"partner_id": partner.id, "amount": "1.00"})
        assert response.status_code == 400
        assert response.json() == {"error": "order_id_required", "message": "Missing order_id"}
