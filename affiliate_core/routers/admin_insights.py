"""Admin: analytics dashboard, IP blocking, fraud scan and job triggers."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies.auth import Principal, require_admin
from ..jobs.affiliate_jobs import JOBS, run_job
from ..services.analytics import affiliate_overview, partner_stats
from ..services.fraud import block_ip, run_fraud_scan, unblock_ip

router = APIRouter(prefix="/v1/admin/affiliate", tags=["affiliate-admin"])


class BlockIpRequest(BaseModel):
    ip_address: str
    reason: Optional[str] = None


@router.get("/analytics")
async def get_affiliate_analytics(
    period: str = Query("30d"),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """Overview, top partners/products and daily series for a period (7d, 30d, 90d, 1y, all)."""
    return affiliate_overview(db, period=period)


@router.get("/analytics/partners/{partner_id}")
async def get_partner_analytics(
    partner_id: str,
    period: str = Query("30d"),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return partner_stats(db, partner_id, period=period)


@router.post("/fraud/blocked-ips")
async def block_ip_address(
    req: BlockIpRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    blocked = block_ip(db, req.ip_address, reason=req.reason)
    return {"ip_address": blocked.ip_address, "reason": blocked.reason, "blocked": True}


@router.delete("/fraud/blocked-ips/{ip_address}")
async def unblock_ip_address(
    ip_address: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    unblock_ip(db, ip_address)
    return {"ip_address": ip_address, "blocked": False}


@router.post("/fraud/scan")
async def scan_pending_conversions(
    limit: int = Query(500, le=5000),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return run_fraud_scan(db, limit=limit)


@router.post("/jobs/{job_name}")
async def trigger_job(
    job_name: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    if job_name not in JOBS:
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_name}'")
    return {"job": job_name, "results": run_job(db, job_name)}
