"""
Tests for conversion review: approve/reject/reverse transitions, manual
entry and commission totals.
"""
from datetime import datetime, timedelta

import pytest

from affiliate_core.core.errors import ConflictError, NotFoundError
from affiliate_core.models import Conversion
from affiliate_core.services.conversions import ConversionService


class TestReviewTransitions:

    def test_approve_pending(self, db, partner, make_conversion):
        conversion = make_conversion(partner, status="pending")
        approved = ConversionService.approve_conversion(db, conversion.id, notes="Order shipped")
        assert approved.conversion_status == "approved"
        assert approved.approved_at is not None
        assert approved.notes == "Order shipped"

    def test_approve_twice_is_conflict(self, db, partner, make_conversion):
        conversion = make_conversion(partner, status="pending")
        ConversionService.approve_conversion(db, conversion.id)
        with pytest.raises(ConflictError):
            ConversionService.approve_conversion(db, conversion.id)

    def test_reject_pending(self, db, partner, make_conversion):
        conversion = make_conversion(partner, status="pending")
        rejected = ConversionService.reject_conversion(db, conversion.id, notes="Test order")
        assert rejected.conversion_status == "rejected"

    def test_cannot_reject_approved(self, db, partner, make_conversion):
        conversion = make_conversion(partner, status="approved")
        with pytest.raises(ConflictError):
            ConversionService.reject_conversion(db, conversion.id)

    def test_reverse_approved_unpaid(self, db, partner, make_conversion):
        conversion = make_conversion(partner, status="approved", notes="Initial")
        reversed_ = ConversionService.reverse_conversion(db, conversion.id, reason="Refunded")
        assert reversed_.conversion_status == "reversed"
        assert reversed_.notes == "Initial\nRefunded"

    @pytest.mark.parametrize("payout_status", ["processing", "paid"])
    def test_cannot_reverse_once_batched(self, db, partner, make_conversion, payout_status):
        conversion = make_conversion(partner, payout_status=payout_status)
        with pytest.raises(ConflictError):
            ConversionService.reverse_conversion(db, conversion.id)
        db.refresh(conversion)
        assert conversion.conversion_status == "approved"

    def test_cannot_reverse_rejected(self, db, partner, make_conversion):
        conversion = make_conversion(partner, status="rejected")
        with pytest.raises(ConflictError):
            ConversionService.reverse_conversion(db, conversion.id)

    def test_unknown_conversion(self, db):
        with pytest.raises(NotFoundError):
            ConversionService.approve_conversion(db, "missing")


class TestManualConversion:

    def test_manual_entry_is_pending_and_deduped(self, db, partner):
        first = ConversionService.record_manual_conversion(
            db, partner_id=partner.id, order_id="MAN-1", amount_cents=10000,
        )
        second = ConversionService.record_manual_conversion(
            db, partner_id=partner.id, order_id="MAN-1", amount_cents=10000,
        )

        assert first.created is True
        assert second.created is False
        assert second.conversion.id == first.conversion.id
        assert first.conversion.validation_method == "manual"
        assert first.conversion.conversion_status == "pending"
        assert first.conversion.commission_cents == 1000
        assert db.query(Conversion).filter(Conversion.order_id == "MAN-1").count() == 1


class TestListingAndTotals:

    def test_list_filters(self, db, partner, make_partner, make_conversion):
        other = make_partner()
        make_conversion(partner, status="pending")
        make_conversion(partner, status="approved")
        make_conversion(other, status="approved")

        assert len(ConversionService.list_conversions(db, partner_id=partner.id)) == 2
        assert len(ConversionService.list_conversions(db, conversion_status="approved")) == 2
        assert len(ConversionService.list_conversions(db, partner_id=partner.id, conversion_status="pending")) == 1

    def test_list_newest_first(self, db, partner, make_conversion):
        older = make_conversion(partner)
        newer = make_conversion(partner, order_id="NEW", converted_at=datetime.utcnow() + timedelta(hours=1))
        listed = ConversionService.list_conversions(db, partner_id=partner.id)
        assert [c.id for c in listed] == [newer.id, older.id]

    def test_commission_totals(self, db, partner, make_conversion):
        make_conversion(partner, commission_cents=100, status="pending")
        make_conversion(partner, commission_cents=200)
        make_conversion(partner, commission_cents=300, payout_status="processing")
        make_conversion(partner, commission_cents=400, payout_status="paid")
        make_conversion(partner, commission_cents=999, status="rejected")

        totals = ConversionService.commission_totals(db, partner_id=partner.id)

        assert totals == {
            "pending_review_cents": 100,
            "approved_unpaid_cents": 200,
            "processing_cents": 300,
            "paid_cents": 400,
            "conversions": 5,
        }
