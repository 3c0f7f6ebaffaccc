from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from security import require_admin
from shipping_service import InvalidShippingAmount, get_shipping_charge, update_shipping_charge

router = APIRouter(prefix="/api/shipping", tags=["shipping"])


class ShippingChargeIn(BaseModel):
    # validated by shipping_service.parse_amount so strings like "250" are accepted
    amount: Any = None


@router.get("")
def read_shipping_charge():
    return {"success": True, "data": {"amount": get_shipping_charge()}}


@router.put("")
def set_shipping_charge(payload: ShippingChargeIn, admin=Depends(require_admin)):
    try:
        result = update_shipping_charge(payload.amount, updated_by=str(admin["_id"]))
    except InvalidShippingAmount as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "success": True,
        "data": {"amount": result["amount"], "updated_at": result["updated_at"].isoformat()},
        "message": "Shipping charge updated successfully",
    }
