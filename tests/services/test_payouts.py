"""
Tests for payout batching: atomic creation, completion, cancellation and
Stripe processing in mock mode.
"""
import pytest

from affiliate_core.core.errors import ConflictError, NoEligibleConversionsError, NotFoundError
from affiliate_core.models import Conversion, Payout
from affiliate_core.services.payout_service import PayoutService


def _conversions_for(db, payout_id):
    return db.query(Conversion).filter(Conversion.payout_id == payout_id).all()


class TestCreatePayout:

    def test_batches_three_conversions_atomically(self, db, partner, make_conversion):
        """Three approved conversions totalling $45 become one payout, verified by re-querying."""
        ids = [make_conversion(partner, commission_cents=cents).id for cents in (1500, 2000, 1000)]

        payout = PayoutService.create_payout(db, partner.id)
        db.expire_all()

        stored = db.query(Payout).filter(Payout.partner_id == partner.id).all()
        assert len(stored) == 1
        assert stored[0].id == payout.id
        assert stored[0].total_commission_cents == 4500
        assert stored[0].total_conversions == 3
        assert stored[0].status == "pending"

        linked = _conversions_for(db, payout.id)
        assert sorted(c.id for c in linked) == sorted(ids)
        assert all(c.payout_status == "processing" for c in linked)

    def test_period_spans_converted_at(self, db, partner, make_conversion):
        conversions = [make_conversion(partner) for _ in range(3)]
        payout = PayoutService.create_payout(db, partner.id)
        assert payout.period_start == min(c.converted_at for c in conversions)
        assert payout.period_end == max(c.converted_at for c in conversions)

    def test_only_approved_unpaid_are_selected(self, db, partner, make_conversion):
        eligible = make_conversion(partner, commission_cents=1000)
        pending = make_conversion(partner, status="pending")
        paid = make_conversion(partner, payout_status="paid")

        payout = PayoutService.create_payout(db, partner.id)

        assert [c.id for c in _conversions_for(db, payout.id)] == [eligible.id]
        db.refresh(pending)
        db.refresh(paid)
        assert pending.payout_status == "unpaid"
        assert paid.payout_id is None

    def test_subset_by_conversion_ids(self, db, partner, make_conversion):
        a = make_conversion(partner, commission_cents=1000)
        b = make_conversion(partner, commission_cents=2000)
        payout = PayoutService.create_payout(db, partner.id, conversion_ids=[b.id])
        assert payout.total_commission_cents == 2000
        db.refresh(a)
        assert a.payout_status == "unpaid"

    def test_no_eligible_conversions(self, db, partner, make_conversion):
        make_conversion(partner, status="pending")
        with pytest.raises(NoEligibleConversionsError):
            PayoutService.create_payout(db, partner.id)
        assert db.query(Payout).count() == 0

    def test_conversion_cannot_join_two_payouts(self, db, partner, make_conversion):
        conversion = make_conversion(partner)
        PayoutService.create_payout(db, partner.id)
        with pytest.raises(NoEligibleConversionsError):
            PayoutService.create_payout(db, partner.id, conversion_ids=[conversion.id])

    def test_mixed_currencies_roll_back(self, db, partner, make_conversion):
        make_conversion(partner, currency="USD")
        make_conversion(partner, currency="EUR")
        with pytest.raises(ConflictError):
            PayoutService.create_payout(db, partner.id)
        assert db.query(Payout).count() == 0
        assert db.query(Conversion).filter(Conversion.payout_status != "unpaid").count() == 0

    def test_threshold_is_enforced_on_request(self, db, partner, make_conversion):
        make_conversion(partner, commission_cents=1000)
        with pytest.raises(ConflictError):
            PayoutService.create_payout(db, partner.id, enforce_threshold=True)
        assert PayoutService.create_payout(db, partner.id).total_commission_cents == 1000

    def test_unknown_partner(self, db):
        with pytest.raises(NotFoundError):
            PayoutService.create_payout(db, "missing")


class TestCompleteAndCancel:

    def test_complete_marks_conversions_paid(self, db, partner, make_conversion):
        make_conversion(partner)
        make_conversion(partner)
        payout = PayoutService.create_payout(db, partner.id)

        completed = PayoutService.complete_payout(db, payout.id, transaction_reference="WIRE-123")
        db.expire_all()

        assert completed.status == "completed"
        assert completed.transaction_reference == "WIRE-123"
        assert completed.payout_date is not None
        assert all(c.payout_status == "paid" for c in _conversions_for(db, payout.id))

    def test_double_complete_is_rejected(self, db, partner, make_conversion):
        make_conversion(partner)
        payout = PayoutService.create_payout(db, partner.id)
        PayoutService.complete_payout(db, payout.id)
        with pytest.raises(ConflictError):
            PayoutService.complete_payout(db, payout.id)

    def test_cancel_releases_conversions(self, db, partner, make_conversion):
        ids = {make_conversion(partner).id for _ in range(3)}
        payout = PayoutService.create_payout(db, partner.id)

        cancelled = PayoutService.cancel_payout(db, payout.id, reason="Bank details wrong")
        db.expire_all()

        assert cancelled.status == "failed"
        assert cancelled.failure_reason == "Bank details wrong"
        released = db.query(Conversion).filter(Conversion.id.in_(ids)).all()
        assert all(c.payout_status == "unpaid" and c.payout_id is None for c in released)

        again = PayoutService.create_payout(db, partner.id)
        assert {c.id for c in _conversions_for(db, again.id)} == ids

    def test_cannot_cancel_completed(self, db, partner, make_conversion):
        make_conversion(partner)
        payout = PayoutService.create_payout(db, partner.id)
        PayoutService.complete_payout(db, payout.id)
        with pytest.raises(ConflictError):
            PayoutService.cancel_payout(db, payout.id)


class TestProcessPayout:

    def test_manual_method_needs_manual_action(self, db, partner, make_conversion):
        make_conversion(partner)
        payout = PayoutService.create_payout(db, partner.id)
        result = PayoutService.process_payout(db, payout.id)
        assert result["status"] == "requires_manual_action"
        assert PayoutService.get_payout(db, payout.id).status == "pending"

    def test_stripe_mock_transfer_completes_payout(self, db, make_partner, make_conversion):
        partner = make_partner(payout_method="stripe", stripe_account_id="acct_123")
        make_conversion(partner)
        payout = PayoutService.create_payout(db, partner.id)

        result = PayoutService.process_payout(db, payout.id)

        assert result["mock"] is True
        assert result["transaction_reference"].startswith("tr_mock_")
        assert PayoutService.get_payout(db, payout.id).status == "completed"

    def test_stripe_without_account(self, db, make_partner, make_conversion):
        partner = make_partner(payout_method="stripe")
        make_conversion(partner)
        payout = PayoutService.create_payout(db, partner.id)
        with pytest.raises(ConflictError):
            PayoutService.process_payout(db, payout.id)


class TestPartnerBalance:

    def test_balance_by_payout_state(self, db, partner, make_conversion):
        make_conversion(partner, commission_cents=3000)
        make_conversion(partner, commission_cents=4000, payout_status="paid")
        make_conversion(partner, commission_cents=9999, status="pending")

        balance = PayoutService.partner_balance(db, partner.id)
        assert balance["unpaid_cents"] == 3000
        assert balance["paid_cents"] == 4000
        assert balance["threshold_reached"] is False
