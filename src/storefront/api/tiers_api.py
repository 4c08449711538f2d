"""
Tiers API - FastAPI router for price-tier management and quotes.
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from ..data.store import FrameStore
from ..engine.models import PriceTier
from ..engine.tiered_pricing import TieredPriceCalculator
from ..services.tiers_service import TiersService
from .state import get_store

router = APIRouter(prefix="/api", tags=["tiers"])


# Pydantic models for API
class TierCreate(BaseModel):
    """Request model for creating a tier."""
    min_quantity: int
    unit_price: Decimal
    discounted_unit_price: Optional[Decimal] = None


class TierUpdate(BaseModel):
    """Request model for updating a tier."""
    min_quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None
    discounted_unit_price: Optional[Decimal] = None


class TierValidate(TierCreate):
    product_id: str
    tier_id: Optional[str] = None


class TierResponse(BaseModel):
    """Response model for a tier."""
    id: Optional[str]
    product_id: Optional[str]
    min_quantity: int
    unit_price: float
    discounted_unit_price: Optional[float]
    effective_unit_price: float


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]


class QuoteRequest(BaseModel):
    quantity: int


class CalculateRequest(BaseModel):
    """Stateless calculation over caller-supplied tiers."""
    quantity: int
    tiers: list[TierCreate] = Field(default_factory=list)
    basePrice: Decimal
    baseDiscountedPrice: Optional[Decimal] = None


def _tier_response(tier: PriceTier) -> TierResponse:
    return TierResponse(
        id=tier.id,
        product_id=tier.product_id,
        min_quantity=tier.min_quantity,
        unit_price=float(tier.unit_price),
        discounted_unit_price=float(tier.discounted_unit_price) if tier.discounted_unit_price is not None else None,
        effective_unit_price=float(tier.effective_unit_price),
    )


# Endpoints

@router.get("/products/{product_id}/tiers", response_model=list[TierResponse])
def list_tiers(product_id: str, store: FrameStore = Depends(get_store)):
    """List a product's price tiers."""
    return [_tier_response(t) for t in TiersService(store).list_tiers(product_id)]


@router.get("/products/{product_id}/tiers/stats")
def tier_stats(product_id: str, store: FrameStore = Depends(get_store)):
    return jsonable_encoder(TiersService(store).get_stats(product_id))


@router.post("/products/{product_id}/tiers", response_model=TierResponse)
def create_tier(product_id: str, tier_data: TierCreate, store: FrameStore = Depends(get_store)):
    """Create a new price tier."""
    created = TiersService(store).create_tier(
        product_id, tier_data.min_quantity, tier_data.unit_price, tier_data.discounted_unit_price
    )
    return _tier_response(created)


@router.put("/tiers/{tier_id}", response_model=TierResponse)
def update_tier(tier_id: str, updates: TierUpdate, store: FrameStore = Depends(get_store)):
    """Update an existing tier."""
    # exclude_unset keeps explicit nulls (clearing a promotional price)
    updated = TiersService(store).update_tier(tier_id, updates.model_dump(exclude_unset=True))
    return _tier_response(updated)


@router.delete("/tiers/{tier_id}")
def delete_tier(tier_id: str, store: FrameStore = Depends(get_store)):
    """Delete a tier."""
    TiersService(store).delete_tier(tier_id)
    return {"success": True, "message": f"Price tier '{tier_id}' deleted"}


@router.post("/tiers/validate", response_model=ValidationResponse)
def validate_tier(tier_data: TierValidate, store: FrameStore = Depends(get_store)):
    """Validate a tier without saving."""
    result = TiersService(store).validate_tier(
        tier_data.product_id, tier_data.min_quantity, tier_data.unit_price,
        tier_data.discounted_unit_price, tier_id=tier_data.tier_id,
    )
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


@router.post("/products/{product_id}/quote")
def quote_product(product_id: str, req: QuoteRequest, store: FrameStore = Depends(get_store)):
    """Price a quantity of a stored product."""
    result = TiersService(store).quote(product_id, req.quantity)
    return jsonable_encoder(result.to_dict())


@router.post("/pricing/calculate")
def calculate_price(req: CalculateRequest):
    """Price a quantity against tiers sent in the request."""
    tiers = [
        PriceTier(
            min_quantity=t.min_quantity,
            unit_price=t.unit_price,
            discounted_unit_price=t.discounted_unit_price,
        )
        for t in req.tiers
    ]
    calculator = TieredPriceCalculator(tiers, req.basePrice, req.baseDiscountedPrice)
    body = calculator.calculate(req.quantity).to_dict()
    body['minimumPrice'] = calculator.minimum_price
    body['tierTable'] = calculator.tier_table()
    return jsonable_encoder(body)
