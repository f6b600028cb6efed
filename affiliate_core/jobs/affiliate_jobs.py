"""
Scheduled affiliate jobs.

Each job is a plain function over a Session so it can run from cron
(`python -m affiliate_core.jobs.affiliate_jobs <job>`) or from the admin
trigger endpoint.
"""
import argparse
import logging
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..services.campaign_service import CampaignService
from ..services.analytics import check_milestones as detect_milestones
from ..services.catalog import expire_links, run_link_health_check
from ..services.fraud import run_fraud_scan

logger = logging.getLogger(__name__)


def start_scheduled_campaigns(db: Session) -> Dict[str, Any]:
    return {"started_campaigns": CampaignService.start_scheduled_campaigns(db)}


def complete_ended_campaigns(db: Session) -> Dict[str, Any]:
    return {"completed_campaigns": CampaignService.complete_ended_campaigns(db)}


def expire_old_links(db: Session) -> Dict[str, Any]:
    return {"expired_links": expire_links(db)}


def fraud_scan(db: Session) -> Dict[str, Any]:
    return run_fraud_scan(db)


def link_health_check(db: Session) -> Dict[str, Any]:
    return run_link_health_check(db)


def check_milestones(db: Session) -> Dict[str, Any]:
    return detect_milestones(db)


def campaign_lifecycle(db: Session) -> Dict[str, Any]:
    """End expired campaigns, then start the ones that are due."""
    results = complete_ended_campaigns(db)
    results.update(start_scheduled_campaigns(db))
    return results


JOBS: Dict[str, Callable[[Session], Dict[str, Any]]] = {
    "campaign_lifecycle": campaign_lifecycle,
    "start_scheduled_campaigns": start_scheduled_campaigns,
    "complete_ended_campaigns": complete_ended_campaigns,
    "expire_links": expire_old_links,
    "fraud_scan": fraud_scan,
    "link_health_check": link_health_check,
    "check_milestones": check_milestones,
}


def run_job(db: Session, name: str) -> Dict[str, Any]:
    """Run one job by name. Raises KeyError for unknown jobs."""
    job = JOBS[name]
    logger.info(f"Running affiliate job {name}")
    results = job(db)
    logger.info(f"Affiliate job {name} completed: {results}")
    return results


def main():
    """Main entry point for cron"""
    parser = argparse.ArgumentParser(description="Run a scheduled affiliate job")
    parser.add_argument("job", choices=sorted(JOBS))
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    db = SessionLocal()
    try:
        run_job(db, args.job)
    except Exception as e:
        logger.error(f"Affiliate job {args.job} failed: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
