"""
Tests for campaign lifecycle transitions and the scheduled jobs.
"""
from datetime import datetime, timedelta

import pytest

from affiliate_core.core.errors import ConflictError, NotFoundError, ValidationError
from affiliate_core.jobs.affiliate_jobs import JOBS, run_job
from affiliate_core.models import Link
from affiliate_core.services.campaign_service import CampaignService


def _dates(start_offset=-1, end_offset=30):
    now = datetime.utcnow()
    return now + timedelta(days=start_offset), now + timedelta(days=end_offset)


class TestCampaignLifecycle:

    def test_create_draft(self, db, partner):
        start, end = _dates()
        campaign = CampaignService.create_campaign(
            db, name="Launch", start_date=start, end_date=end, partner_id=partner.id, bonus_commission_rate=15,
        )
        assert campaign.status == "draft"

    def test_create_scheduled(self, db):
        start, end = _dates(1, 10)
        assert CampaignService.create_campaign(db, name="Soon", start_date=start, end_date=end, schedule=True).status == "scheduled"

    def test_end_before_start(self, db):
        start, end = _dates(5, 1)
        with pytest.raises(ValidationError):
            CampaignService.create_campaign(db, name="Bad", start_date=start, end_date=end)

    def test_product_must_belong_to_partner(self, db, product, make_partner):
        start, end = _dates()
        with pytest.raises(ConflictError):
            CampaignService.create_campaign(
                db, name="Mismatch", start_date=start, end_date=end,
                partner_id=make_partner().id, product_id=product.id,
            )

    def test_unknown_partner(self, db):
        start, end = _dates()
        with pytest.raises(NotFoundError):
            CampaignService.create_campaign(db, name="X", start_date=start, end_date=end, partner_id="missing")

    def test_full_lifecycle(self, db):
        start, end = _dates()
        campaign = CampaignService.create_campaign(db, name="Flow", start_date=start, end_date=end)
        assert CampaignService.schedule_campaign(db, campaign.id).status == "scheduled"
        assert CampaignService.activate_campaign(db, campaign.id).status == "active"
        assert CampaignService.complete_campaign(db, campaign.id).status == "completed"

    def test_completed_is_final(self, db, make_campaign):
        campaign = make_campaign(status="completed")
        with pytest.raises(ConflictError):
            CampaignService.activate_campaign(db, campaign.id)
        with pytest.raises(ConflictError):
            CampaignService.cancel_campaign(db, campaign.id)
        with pytest.raises(ConflictError):
            CampaignService.update_campaign(db, campaign.id, name="Renamed")

    def test_cannot_complete_draft(self, db, make_campaign):
        campaign = make_campaign(status="draft")
        with pytest.raises(ConflictError):
            CampaignService.complete_campaign(db, campaign.id)

    def test_update_rejects_inverted_dates(self, db, make_campaign):
        campaign = make_campaign()
        with pytest.raises(ValidationError):
            CampaignService.update_campaign(db, campaign.id, end_date=campaign.start_date - timedelta(days=1))

    def test_active_campaigns(self, db, make_campaign):
        live = make_campaign()
        make_campaign(status="draft")
        make_campaign(start_date=datetime.utcnow() + timedelta(days=2))
        assert [c.id for c in CampaignService.get_active_campaigns(db)] == [live.id]


class TestJobs:

    def test_start_scheduled(self, db, make_campaign):
        due = make_campaign(status="scheduled")
        future = make_campaign(status="scheduled", start_date=datetime.utcnow() + timedelta(days=3))

        assert run_job(db, "start_scheduled_campaigns") == {"started_campaigns": 1}
        db.refresh(due)
        db.refresh(future)
        assert due.status == "active"
        assert future.status == "scheduled"

    def test_complete_ended(self, db, make_campaign):
        ended = make_campaign(end_date=datetime.utcnow() - timedelta(hours=1),
                              start_date=datetime.utcnow() - timedelta(days=10))
        running = make_campaign()

        assert run_job(db, "complete_ended_campaigns") == {"completed_campaigns": 1}
        db.refresh(ended)
        db.refresh(running)
        assert ended.status == "completed"
        assert running.status == "active"

    def test_campaign_lifecycle_runs_both(self, db, make_campaign):
        make_campaign(status="scheduled")
        make_campaign(end_date=datetime.utcnow() - timedelta(hours=1),
                      start_date=datetime.utcnow() - timedelta(days=10))
        assert run_job(db, "campaign_lifecycle") == {"completed_campaigns": 1, "started_campaigns": 1}

    def test_expire_links(self, db, link):
        link.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        assert run_job(db, "expire_links") == {"expired_links": 1}
        assert db.query(Link).filter(Link.id == link.id).one().status == "expired"

    def test_fraud_scan_job(self, db, partner, make_conversion):
        make_conversion(partner, status="pending")
        assert run_job(db, "fraud_scan")["scanned"] == 1

    def test_unknown_job(self, db):
        with pytest.raises(KeyError):
            run_job(db, "reticulate_splines")

    def test_registry(self):
        assert set(JOBS) == {
            "campaign_lifecycle", "start_scheduled_campaigns", "complete_ended_campaigns",
            "expire_links", "fraud_scan", "link_health_check", "check_milestones",
        }
