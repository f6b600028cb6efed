"""
Admin: partners and their products.

Partner secrets are only returned on create and on rotation.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies.auth import Principal, require_admin
from ..schemas.affiliate import partner_to_dict, product_to_dict
from ..services.catalog import PartnerService, ProductService
from ..services.fraud import partner_reputation

router = APIRouter(prefix="/v1/admin/affiliate", tags=["affiliate-admin"])


# --- Request/Response Schemas ---

class CreatePartnerRequest(BaseModel):
    company_name: str
    commission_rate: float
    commission_type: str = "percentage"
    slug: Optional[str] = None
    contact_email: Optional[str] = None
    website_url: Optional[str] = None
    cookie_window_days: Optional[int] = None
    status: str = "active"
    payout_threshold_cents: Optional[int] = None
    payout_method: str = "manual"
    stripe_account_id: Optional[str] = None
    with_api_secret: bool = True


class UpdatePartnerRequest(BaseModel):
    company_name: Optional[str] = None
    contact_email: Optional[str] = None
    website_url: Optional[str] = None
    commission_rate: Optional[float] = None
    commission_type: Optional[str] = None
    cookie_window_days: Optional[int] = None
    status: Optional[str] = None
    payout_threshold_cents: Optional[int] = None
    payout_method: Optional[str] = None
    stripe_account_id: Optional[str] = None
    notes: Optional[str] = None


class CreateProductRequest(BaseModel):
    name: str
    product_url: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price_cents: Optional[int] = None
    commission_override: Optional[float] = None


class UpdateProductRequest(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    product_url: Optional[str] = None
    price_cents: Optional[int] = None
    commission_override: Optional[float] = None
    status: Optional[str] = None


# --- Partners ---

@router.post("/partners")
async def create_partner(
    req: CreatePartnerRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    partner = PartnerService.create_partner(db, **req.model_dump())
    return {"partner": partner_to_dict(partner, include_secret=True)}


@router.get("/partners")
async def list_partners(
    status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    partners = PartnerService.list_partners(db, status=status, limit=limit, offset=offset)
    return {"partners": [partner_to_dict(p) for p in partners], "count": len(partners)}


@router.get("/partners/{partner_id}")
async def get_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"partner": partner_to_dict(PartnerService.get_partner(db, partner_id))}


@router.put("/partners/{partner_id}")
async def update_partner(
    partner_id: str,
    req: UpdatePartnerRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    partner = PartnerService.update_partner(db, partner_id, **req.model_dump(exclude_unset=True))
    return {"partner": partner_to_dict(partner)}


@router.delete("/partners/{partner_id}")
async def delete_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return PartnerService.delete_partner(db, partner_id)


@router.post("/partners/{partner_id}/rotate-secret")
async def rotate_partner_secret(
    partner_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    partner = PartnerService.rotate_api_secret(db, partner_id)
    return {"partner": partner_to_dict(partner, include_secret=True)}


@router.get("/partners/{partner_id}/reputation")
async def get_partner_reputation(
    partner_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    PartnerService.get_partner(db, partner_id)
    return partner_reputation(db, partner_id)


# --- Products ---

@router.post("/partners/{partner_id}/products")
async def create_product(
    partner_id: str,
    req: CreateProductRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    product = ProductService.create_product(db, partner_id=partner_id, **req.model_dump())
    return {"product": product_to_dict(product)}


@router.get("/products")
async def list_products(
    partner_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    products = ProductService.list_products(db, partner_id=partner_id, status=status, limit=limit, offset=offset)
    return {"products": [product_to_dict(p) for p in products], "count": len(products)}


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"product": product_to_dict(ProductService.get_product(db, product_id))}


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    req: UpdateProductRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    product = ProductService.update_product(db, product_id, **req.model_dump(exclude_unset=True))
    return {"product": product_to_dict(product)}


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return ProductService.delete_product(db, product_id)
