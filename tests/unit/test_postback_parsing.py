"""Tests for postback body parsing and field-alias normalization."""
import pytest

from affiliate_core.config import settings
from affiliate_core.core.errors import InvalidAmountError
from affiliate_core.services.postback import normalize_payload, parse_amount, parse_body


class TestParseBody:

    def test_json_object(self):
        assert parse_body(b'{"order_id": "A1", "amount": 10}') == {"order_id": "A1", "amount": 10}

    def test_form_encoded(self):
        assert parse_body(b"order_id=A1&amount=10.50") == {"order_id": "A1", "amount": "10.50"}

    def test_json_scalar_is_not_a_payload(self):
        assert "order_id" not in parse_body(b'"order_id"')

    def test_empty(self):
        assert parse_body(b"") == {}


class TestNormalizePayload:

    def test_canonical_names(self):
        fields = normalize_payload({"order_id": "A1", "amount": "10", "click_id": "c1"})
        assert fields["order_id"] == "A1"
        assert fields["amount"] == "10"
        assert fields["click_id"] == "c1"

    def test_camel_case_aliases(self):
        fields = normalize_payload({"orderId": "A1", "clickId": "c1", "partnerId": "p1"})
        assert fields["order_id"] == "A1"
        assert fields["click_id"] == "c1"
        assert fields["partner_id"] == "p1"

    def test_transaction_id_doubles_as_order_id(self):
        fields = normalize_payload({"transaction_id": "T9", "sale_amount": "5"})
        assert fields["order_id"] == "T9"
        assert fields["transaction_id"] == "T9"
        assert fields["amount"] == "5"

    def test_first_alias_wins(self):
        fields = normalize_payload({"order_id": "A1", "orderId": "B2"})
        assert fields["order_id"] == "A1"

    def test_blank_values_are_skipped(self):
        fields = normalize_payload({"order_id": "  ", "orderId": "B2"})
        assert fields["order_id"] == "B2"

    def test_subid_feeds_click_and_sub_id(self):
        fields = normalize_payload({"subid": "tok"})
        assert fields["click_id"] == "tok"
        assert fields["sub_id"] == "tok"

    def test_numeric_values_become_strings(self):
        assert normalize_payload({"order_id": 42})["order_id"] == "42"

    def test_extra_aliases_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "postback_extra_aliases", '{"order_id": ["oid"], "amount": "revenue"}')
        fields = normalize_payload({"oid": "X1", "revenue": "12.00"})
        assert fields["order_id"] == "X1"
        assert fields["amount"] == "12.00"

    def test_invalid_extra_aliases_are_ignored(self, monkeypatch):
        monkeypatch.setattr(settings, "postback_extra_aliases", "not json")
        assert normalize_payload({"order_id": "A1"})["order_id"] == "A1"


class TestParseAmount:

    def test_valid(self):
        assert parse_amount("149.99") == 14999

    @pytest.mark.parametrize("value", [None, "abc", "0", "-5.00"])
    def test_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            parse_amount(value)
