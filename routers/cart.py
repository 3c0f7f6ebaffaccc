from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from catalog import get_product_or_404, is_coming_soon, is_out_of_stock, present_product
from database import db, to_object_id
from security import get_current_user

router = APIRouter(prefix="/api/cart", tags=["cart"])

CART_PRODUCT_FIELDS = ("name", "slug", "price", "original_price", "images", "image_url", "in_stock", "stock_count", "coming_soon")


class CartItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartQuantity(BaseModel):
    quantity: int


def populated_cart(user_id) -> list:
    """The user's cart lines with product details; lines for deleted products are dropped."""
    user = db["user"].find_one({"_id": user_id}, {"cart": 1})
    lines = user.get("cart", []) if user else []
    oids = [oid for oid in (to_object_id(line["product_id"]) for line in lines) if oid is not None]
    projection = {field: 1 for field in CART_PRODUCT_FIELDS}
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": oids}}, projection)}

    cart = []
    for line in lines:
        product = products.get(line["product_id"])
        if product is None:
            continue
        cart.append({
            "product": present_product(product),
            "quantity": line["quantity"],
            "line_total": (product.get("price") or 0) * line["quantity"],
        })
    return cart


def _save_cart(user_id, lines: list) -> None:
    db["user"].update_one({"_id": user_id}, {"$set": {"cart": lines, "updated_at": datetime.now(timezone.utc)}})


@router.get("")
def get_cart(user=Depends(get_current_user)):
    return {"success": True, "data": populated_cart(user["_id"])}


@router.post("")
def add_to_cart(payload: CartItemIn, user=Depends(get_current_user)):
    product = get_product_or_404(payload.product_id)
    if is_coming_soon(product):
        raise HTTPException(status_code=400, detail="Product is coming soon and cannot be purchased yet")
    if is_out_of_stock(product):
        raise HTTPException(status_code=400, detail="Product is out of stock")

    pid = str(product["_id"])
    lines = list(user.get("cart", []))
    existing = next((line for line in lines if line["product_id"] == pid), None)
    if existing:
        existing["quantity"] += payload.quantity
    else:
        lines.append({"product_id": pid, "quantity": payload.quantity})
    _save_cart(user["_id"], lines)

    return {"success": True, "data": populated_cart(user["_id"]), "message": "Product added to cart"}


@router.put("/{product_id}")
def update_cart_item(product_id: str, payload: CartQuantity, user=Depends(get_current_user)):
    if payload.quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than 0")

    lines = list(user.get("cart", []))
    line = next((line for line in lines if line["product_id"] == product_id), None)
    if line is None:
        raise HTTPException(status_code=404, detail="Item not found in cart")
    line["quantity"] = payload.quantity
    _save_cart(user["_id"], lines)

    return {"success": True, "data": populated_cart(user["_id"])}


@router.delete("/{product_id}")
def remove_from_cart(product_id: str, user=Depends(get_current_user)):
    lines = [line for line in user.get("cart", []) if line["product_id"] != product_id]
    _save_cart(user["_id"], lines)
    return {"success": True, "data": populated_cart(user["_id"]), "message": "Item removed from cart"}


@router.delete("")
def clear_cart(user=Depends(get_current_user)):
    _save_cart(user["_id"], [])
    return {"success": True, "data": [], "message": "Cart cleared"}
