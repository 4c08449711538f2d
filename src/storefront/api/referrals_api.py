"""
Referrals API - referral balance, PIX keys and withdrawal requests.
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..data.store import FrameStore
from ..services.referrals import ReferralService
from .state import get_store

router = APIRouter(prefix="/api", tags=["referrals"])


class PixKeyRequest(BaseModel):
    pix_key: str
    pix_key_type: str
    holder_name: str
    id: Optional[str] = None


class WithdrawalRequestBody(BaseModel):
    amount: Decimal
    pix_key_id: Optional[str] = None


class WithdrawalUpdate(BaseModel):
    """Admin decision on a withdrawal."""
    status: str
    processed_by: Optional[str] = None
    admin_notes: Optional[str] = None


@router.get("/users/{user_id}/referrals")
def get_referrals(user_id: str, store: FrameStore = Depends(get_store)):
    """Referral code and commission totals."""
    service = ReferralService(store)
    code = service.ensure_referral_code(user_id)
    return jsonable_encoder({
        "referralCode": code,
        "stats": service.get_stats(user_id).to_dict(),
        "commissions": service.list_commissions(user_id),
    })


@router.get("/users/{user_id}/pix-keys")
def list_pix_keys(user_id: str, store: FrameStore = Depends(get_store)):
    return jsonable_encoder(ReferralService(store).list_pix_keys(user_id))


@router.post("/users/{user_id}/pix-keys")
def save_pix_key(user_id: str, req: PixKeyRequest, store: FrameStore = Depends(get_store)):
    """Create or update a PIX key."""
    row = ReferralService(store).save_pix_key(
        user_id, req.pix_key, req.pix_key_type, req.holder_name, key_id=req.id
    )
    return jsonable_encoder(row)


@router.get("/users/{user_id}/withdrawals")
def list_withdrawals(user_id: str, store: FrameStore = Depends(get_store)):
    return jsonable_encoder(ReferralService(store).list_withdrawals(user_id))


@router.post("/users/{user_id}/withdrawals")
def request_withdrawal(user_id: str, req: WithdrawalRequestBody, store: FrameStore = Depends(get_store)):
    """Request a payout of available commissions."""
    row = ReferralService(store).request_withdrawal(user_id, req.amount, req.pix_key_id)
    return jsonable_encoder({"success": True, "withdrawal": row})


@router.put("/withdrawals/{request_id}")
def process_withdrawal(request_id: str, req: WithdrawalUpdate, store: FrameStore = Depends(get_store)):
    row = ReferralService(store).process_withdrawal(
        request_id, req.status, processed_by=req.processed_by, admin_notes=req.admin_notes
    )
    return jsonable_encoder(row)
