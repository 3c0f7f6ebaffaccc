import logging
import re
import secrets
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator

from catalog import is_coming_soon, is_out_of_stock, primary_image
from database import create_document, db, serialize_doc, to_object_id
from notifications import notify_low_stock, notify_new_order
from schemas import Order, OrderItem, PaymentMethod, ShippingAddress
from shipping_service import get_shipping_charge
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

CANCELLABLE_STATUSES = ("pending", "confirmed")
# every status except cancelled still holds the reserved stock
STOCK_HOLDING_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered")


class OrderLineIn(BaseModel):
    product_id: Optional[str] = None
    slug: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: int = Field(1, ge=1)

    @model_validator(mode="after")
    def has_reference(self):
        if not (self.product_id or self.slug or self.name):
            raise ValueError("Each item needs a product_id, slug or name")
        return self


class OrderCreate(BaseModel):
    items: List[OrderLineIn] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "COD"
    notes: Optional[str] = None


def resolve_order_line(line: OrderLineIn) -> Optional[dict]:
    """Find the product an order line refers to.

    Lookup order: product id, then slug, then exact name (case-insensitive),
    then a partial name match inside the line's category.
    """
    products = db["product"]
    oid = to_object_id(line.product_id) if line.product_id else None
    if oid is not None:
        product = products.find_one({"_id": oid})
        if product:
            return product
    if line.slug:
        product = products.find_one({"slug": line.slug.strip().lower()})
        if product:
            return product
    if line.name:
        name = line.name.strip()
        product = products.find_one({"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}})
        if product:
            return product
        if line.category:
            product = products.find_one({
                "category": line.category,
                "name": {"$regex": re.escape(name), "$options": "i"},
            })
            if product:
                return product
    return None


def generate_order_number() -> str:
    while True:
        candidate = f"VG{datetime.now(timezone.utc):%y%m%d}{secrets.token_hex(3).upper()}"
        if not db["order"].find_one({"order_number": candidate}):
            return candidate


def _restore_stock(reserved: list) -> None:
    for product_id, quantity in reserved:
        db["product"].update_one({"_id": product_id}, {"$inc": {"stock_count": quantity}, "$set": {"in_stock": True}})


def _reserve_stock(lines: list) -> None:
    reserved = []
    for product, quantity in lines:
        result = db["product"].update_one(
            {"_id": product["_id"], "stock_count": {"$gte": quantity}},
            {"$inc": {"stock_count": -quantity}},
        )
        if result.modified_count == 0:
            _restore_stock(reserved)
            raise HTTPException(
                status_code=400,
                detail=f"Product {product['name']} is out of stock or insufficient quantity",
            )
        reserved.append((product["_id"], quantity))

    ids = [product_id for product_id, _ in reserved]
    db["product"].update_many({"_id": {"$in": ids}, "stock_count": {"$lte": 0}}, {"$set": {"in_stock": False}})


def cancel_and_restock(order: dict, from_statuses=STOCK_HOLDING_STATUSES) -> bool:
    """Move an order to cancelled and give its stock back.

    The status change is conditional on the current status, so the stock of an
    order is returned at most once. Returns False when the order was not in one
    of ``from_statuses``.
    """
    result = db["order"].update_one(
        {"_id": order["_id"], "order_status": {"$in": list(from_statuses)}},
        {"$set": {"order_status": "cancelled", "updated_at": datetime.now(timezone.utc)}},
    )
    if result.modified_count == 0:
        return False
    _restore_stock([(to_object_id(item["product_id"]), item["quantity"]) for item in order["items"]])
    return True


@router.post("", status_code=201)
def create_order(payload: OrderCreate, user=Depends(get_current_user)):
    # Resolve and validate every line before writing anything
    lines = {}
    for item in payload.items:
        product = resolve_order_line(item)
        if not product:
            reference = item.product_id or item.slug or item.name
            raise HTTPException(status_code=404, detail=f"Product {reference} not found")
        key = str(product["_id"])
        if key in lines:
            lines[key][1] += item.quantity
        else:
            lines[key] = [product, item.quantity]

    for product, quantity in lines.values():
        if is_coming_soon(product):
            raise HTTPException(status_code=400, detail=f"Product {product['name']} is coming soon and cannot be ordered")
        if is_out_of_stock(product) or product.get("stock_count", 0) < quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Product {product['name']} is out of stock or insufficient quantity",
            )

    order_items = [
        OrderItem(
            product_id=str(product["_id"]),
            name=product["name"],
            price=product["price"],
            quantity=quantity,
            image=product.get("image_url") or primary_image(product.get("images")),
        )
        for product, quantity in lines.values()
    ]
    subtotal = round(sum(item.price * item.quantity for item in order_items), 2)
    shipping_cost = get_shipping_charge()
    discount = 0
    total = round(subtotal + shipping_cost - discount, 2)

    _reserve_stock(list(lines.values()))

    order = Order(
        order_number=generate_order_number(),
        user_id=str(user["_id"]),
        items=order_items,
        shipping_address=payload.shipping_address,
        payment_method=payload.payment_method,
        notes=payload.notes,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        discount=discount,
        total=total,
    )
    order_id = create_document("order", order)
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"cart": []}})

    created = db["order"].find_one({"_id": to_object_id(order_id)})
    data = serialize_doc(created)
    notify_new_order(data, user)
    for product, _ in lines.values():
        refreshed = db["product"].find_one({"_id": product["_id"]})
        if refreshed:
            notify_low_stock(refreshed)

    logger.info("Order %s placed by %s, total %s", order.order_number, user["email"], total)
    return {"success": True, "data": data, "message": "Order placed successfully"}


@router.get("")
def list_my_orders(user=Depends(get_current_user)):
    items = db["order"].find({"user_id": str(user["_id"])}).sort("created_at", -1)
    return {"success": True, "data": [serialize_doc(o) for o in items]}


@router.get("/track/{order_number}")
def track_order(order_number: str):
    order = db["order"].find_one({"order_number": order_number.strip().upper()})
    if not order:
        order = db["order"].find_one({"tracking_number": order_number.strip()})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return {
        "success": True,
        "data": serialize_doc({
            "order_number": order["order_number"],
            "status": order.get("order_status"),
            "tracking_number": order.get("tracking_number"),
            "created_at": order.get("created_at"),
            "total": order.get("total"),
        }),
    }


def _owned_order_or_error(order_id: str, user: dict) -> dict:
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid}) if oid else None
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order["user_id"] != str(user["_id"]) and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized")
    return order


@router.get("/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user)):
    order = _owned_order_or_error(order_id, user)
    data = serialize_doc(order)
    owner = db["user"].find_one({"_id": to_object_id(order["user_id"])}, {"name": 1, "email": 1})
    data["user"] = serialize_doc(owner) if owner else None
    return {"success": True, "data": data}


@router.post("/{order_id}/cancel")
def cancel_order(order_id: str, user=Depends(get_current_user)):
    order = _owned_order_or_error(order_id, user)
    if order.get("order_status") not in CANCELLABLE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Orders that are {order.get('order_status')} cannot be cancelled")

    if not cancel_and_restock(order, CANCELLABLE_STATUSES):
        raise HTTPException(status_code=400, detail="Order can no longer be cancelled")
    logger.info("Order %s cancelled by %s", order["order_number"], user["email"])
    return {"success": True, "data": serialize_doc(db["order"].find_one({"_id": order["_id"]})), "message": "Order cancelled"}
