from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from catalog import get_product_or_404, present_product
from database import db, to_object_id
from security import get_current_user

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])

WISHLIST_PRODUCT_FIELDS = ("name", "slug", "price", "original_price", "images", "image_url", "category", "rating", "num_reviews", "in_stock", "stock_count", "coming_soon")


class WishlistItemIn(BaseModel):
    product_id: str


def populated_wishlist(user_id) -> list:
    user = db["user"].find_one({"_id": user_id}, {"wishlist": 1})
    ids = user.get("wishlist", []) if user else []
    oids = [oid for oid in (to_object_id(pid) for pid in ids) if oid is not None]
    projection = {field: 1 for field in WISHLIST_PRODUCT_FIELDS}
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": oids}}, projection)}
    return [present_product(products[pid]) for pid in ids if pid in products]


@router.get("")
def get_wishlist(user=Depends(get_current_user)):
    return {"success": True, "data": populated_wishlist(user["_id"])}


@router.post("")
def add_to_wishlist(payload: WishlistItemIn, user=Depends(get_current_user)):
    product = get_product_or_404(payload.product_id)
    pid = str(product["_id"])
    if pid in user.get("wishlist", []):
        raise HTTPException(status_code=400, detail="Product already in wishlist")

    db["user"].update_one(
        {"_id": user["_id"]},
        {"$addToSet": {"wishlist": pid}, "$set": {"updated_at": datetime.now(timezone.utc)}},
    )
    return {"success": True, "data": populated_wishlist(user["_id"]), "message": "Product added to wishlist"}


@router.delete("/{product_id}")
def remove_from_wishlist(product_id: str, user=Depends(get_current_user)):
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$pull": {"wishlist": product_id}, "$set": {"updated_at": datetime.now(timezone.utc)}},
    )
    return {"success": True, "data": populated_wishlist(user["_id"]), "message": "Product removed from wishlist"}
