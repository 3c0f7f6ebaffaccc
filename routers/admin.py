import logging
import math
import re
from datetime import date, datetime, time, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr

from catalog import normalize_product, recompute_rating, unique_slug
from database import create_document, db, serialize_doc, to_object_id
from routers.orders import cancel_and_restock
from schemas import ORDER_STATUS_VALUES, PAYMENT_STATUS_VALUES, Product
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

SALES_CHART_MONTHS = 6
USER_PRIVATE_FIELDS = ("password_hash", "reset_code", "reset_code_expires_at")


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None
    tracking_number: Optional[str] = None


class AdminUserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Literal["user", "admin"]] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    phone_dial_code: Optional[str] = None
    profile_image: Optional[str] = None


def _pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) or 1}


def _object_id_or_400(value: str, label: str):
    oid = to_object_id(value)
    if oid is None:
        raise HTTPException(status_code=400, detail=f"Invalid {label} id")
    return oid


def _users_by_id(user_ids, fields=("name", "email", "phone")) -> dict:
    oids = [oid for oid in (to_object_id(uid) for uid in set(user_ids)) if oid is not None]
    projection = {field: 1 for field in fields}
    return {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": oids}}, projection)}


def _month_start(year: int, month: int) -> datetime:
    # naive UTC, month may be out of 1..12 while stepping backwards
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1)


# -----------------------------
# Dashboard metrics
# -----------------------------

def build_sales_chart(now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    start = _month_start(now.year, now.month - (SALES_CHART_MONTHS - 1))
    pipeline = [
        {"$match": {"created_at": {"$gte": start}, "order_status": {"$ne": "cancelled"}}},
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "total": {"$sum": "$total"},
        }},
    ]
    buckets = {(row["_id"]["year"], row["_id"]["month"]): row["total"] for row in db["order"].aggregate(pipeline)}

    labels, data = [], []
    for i in range(SALES_CHART_MONTHS):
        month = _month_start(start.year, start.month + i)
        labels.append(month.strftime("%b %Y"))
        data.append(round(buckets.get((month.year, month.month), 0), 2))
    return {"labels": labels, "data": data}


def build_inventory_chart() -> dict:
    pipeline = [
        {"$group": {"_id": "$category", "stock": {"$sum": "$stock_count"}}},
        {"$sort": {"stock": -1}},
        {"$limit": 6},
    ]
    rows = list(db["product"].aggregate(pipeline))
    return {
        "labels": [row["_id"] or "Uncategorized" for row in rows],
        "data": [row["stock"] for row in rows],
    }


@router.get("/metrics")
def dashboard_metrics():
    totals = next(iter(db["order"].aggregate([
        {"$match": {"order_status": {"$ne": "cancelled"}}},
        {"$group": {"_id": None, "sales": {"$sum": "$total"}}},
    ])), None) or {"sales": 0}

    latest = list(db["order"].find().sort("created_at", -1).limit(5))
    customers = _users_by_id(o["user_id"] for o in latest)

    return {
        "success": True,
        "data": {
            "totals": {
                "sales": round(totals.get("sales", 0), 2),
                "orders": db["order"].count_documents({}),
                "products": db["product"].count_documents({}),
                "customers": db["user"].count_documents({"role": "user"}),
            },
            "sales_chart": build_sales_chart(),
            "inventory_chart": build_inventory_chart(),
            "latest_orders": [
                serialize_doc({
                    "_id": o["_id"],
                    "order_number": o.get("order_number"),
                    "customer_name": customers.get(o["user_id"], {}).get("name", "Guest"),
                    "status": o.get("order_status"),
                    "total": o.get("total"),
                    "created_at": o.get("created_at"),
                })
                for o in latest
            ],
        },
    }


# -----------------------------
# Orders
# -----------------------------

@router.get("/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
):
    match = {}
    if status and status != "all":
        match["order_status"] = status
    if start_date or end_date:
        match["created_at"] = {}
        if start_date:
            match["created_at"]["$gte"] = datetime.combine(start_date, time.min)
        if end_date:
            match["created_at"]["$lte"] = datetime.combine(end_date, time.max)
    if search and search.strip():
        regex = {"$regex": re.escape(search.strip()), "$options": "i"}
        matching_users = db["user"].find({"$or": [{"name": regex}, {"email": regex}, {"phone": regex}]}, {"_id": 1})
        match["$or"] = [
            {"order_number": regex},
            {"tracking_number": regex},
            {"shipping_address.phone": regex},
            {"user_id": {"$in": [str(u["_id"]) for u in matching_users]}},
        ]

    total = db["order"].count_documents(match)
    orders = list(db["order"].find(match).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    users = _users_by_id(o["user_id"] for o in orders)

    data = []
    for order in orders:
        item = serialize_doc(order, exclude=("items",))
        item["items_count"] = len(order.get("items", []))
        customer = users.get(order["user_id"])
        item["user"] = serialize_doc(customer) if customer else None
        data.append(item)

    return {"success": True, "data": data, "pagination": _pagination(page, limit, total)}


def _order_detail(order: dict) -> dict:
    data = serialize_doc(order)
    customer = _users_by_id([order["user_id"]]).get(order["user_id"])
    data["user"] = serialize_doc(customer) if customer else None
    return data


@router.get("/orders/{order_id}")
def get_order(order_id: str):
    order = db["order"].find_one({"_id": _object_id_or_400(order_id, "order")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"success": True, "data": _order_detail(order)}


@router.put("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusUpdate):
    oid = _object_id_or_400(order_id, "order")
    if not payload.status and not payload.payment_status and payload.tracking_number is None:
        raise HTTPException(status_code=400, detail="Please provide at least one field to update")
    if payload.status and payload.status not in ORDER_STATUS_VALUES:
        raise HTTPException(status_code=400, detail="Invalid order status value")
    if payload.payment_status and payload.payment_status not in PAYMENT_STATUS_VALUES:
        raise HTTPException(status_code=400, detail="Invalid payment status value")

    order = db["order"].find_one({"_id": oid})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    current = order.get("order_status")
    if current == "cancelled" and payload.status and payload.status != "cancelled":
        raise HTTPException(status_code=400, detail="Cancelled orders cannot be reopened")
    if payload.status == "cancelled" and current != "cancelled":
        if not cancel_and_restock(order):
            raise HTTPException(status_code=400, detail="Order can no longer be cancelled")

    update = {"updated_at": datetime.now(timezone.utc)}
    if payload.status and payload.status != "cancelled":
        update["order_status"] = payload.status
    if payload.payment_status:
        update["payment_status"] = payload.payment_status
    if payload.tracking_number is not None:
        update["tracking_number"] = payload.tracking_number.strip()
    db["order"].update_one({"_id": oid}, {"$set": update})

    logger.info("Order %s updated: %s", order["order_number"], {k: v for k, v in update.items() if k != "updated_at"})
    return {"success": True, "data": _order_detail(db["order"].find_one({"_id": oid})), "message": "Order updated successfully"}


# -----------------------------
# Users
# -----------------------------

@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[str] = None,
):
    query = {}
    if role and role != "all":
        query["role"] = role
    if search and search.strip():
        regex = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"name": regex}, {"email": regex}, {"phone": regex}]

    total = db["user"].count_documents(query)
    users = db["user"].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)

    data = []
    for user in users:
        uid = str(user["_id"])
        item = serialize_doc(user, exclude=USER_PRIVATE_FIELDS)
        item["orders_count"] = db["order"].count_documents({"user_id": uid})
        latest = next(iter(db["order"].find({"user_id": uid}).sort("created_at", -1).limit(1)), None)
        item["latest_address"] = latest.get("shipping_address") if latest else None
        data.append(item)

    return {"success": True, "data": data, "pagination": _pagination(page, limit, total)}


@router.get("/users/{user_id}/orders")
def user_orders(user_id: str):
    _object_id_or_400(user_id, "user")
    orders = [serialize_doc(o) for o in db["order"].find({"user_id": user_id}).sort("created_at", -1)]
    return {"success": True, "data": orders, "count": len(orders)}


@router.put("/users/{user_id}")
def update_user(user_id: str, payload: AdminUserUpdate):
    oid = _object_id_or_400(user_id, "user")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    update = {}
    if payload.email is not None:
        email = payload.email.strip().lower()
        existing = db["user"].find_one({"email": email})
        if existing and existing["_id"] != oid:
            raise HTTPException(status_code=400, detail="A user with this email already exists")
        update["email"] = email
    for field in ("name", "phone", "country", "country_code", "phone_dial_code", "profile_image"):
        value = getattr(payload, field)
        if value is not None:
            update[field] = value.strip()
    if payload.role is not None:
        update["role"] = payload.role

    update["updated_at"] = datetime.now(timezone.utc)
    db["user"].update_one({"_id": oid}, {"$set": update})
    updated = db["user"].find_one({"_id": oid})
    return {"success": True, "data": serialize_doc(updated, exclude=USER_PRIVATE_FIELDS), "message": "User updated successfully"}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin=Depends(require_admin)):
    oid = _object_id_or_400(user_id, "user")
    if oid == admin["_id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    reviewed = db["review"].distinct("product_id", {"user_id": user_id})
    db["review"].delete_many({"user_id": user_id})
    for product_id in reviewed:
        recompute_rating(product_id)
    db["user"].delete_one({"_id": oid})

    logger.info("User %s deleted by %s", user["email"], admin["email"])
    return {"success": True, "message": "User deleted successfully"}


# -----------------------------
# Notifications
# -----------------------------

@router.get("/notifications")
def list_notifications():
    items = db["notification"].find().sort("created_at", -1).limit(50)
    return {"success": True, "data": [serialize_doc(n) for n in items]}


@router.post("/notifications/clear")
def clear_notifications():
    db["notification"].delete_many({})
    return {"success": True, "message": "Notifications cleared"}


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: str):
    oid = to_object_id(notification_id)
    if oid is None or db["notification"].update_one({"_id": oid}, {"$set": {"read": True}}).matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "data": serialize_doc(db["notification"].find_one({"_id": oid}))}


# -----------------------------
# Seed demo data
# -----------------------------

DEMO_PRODUCTS = [
    {
        "name": "Classic Gold Necklace Set - 22K Premium Collection",
        "price": 85000,
        "original_price": 95000,
        "images": ["/4.png"],
        "category": "Necklaces",
        "description": "Exquisite 22K gold necklace set featuring traditional design with modern elegance.",
        "ingredients": "22K Pure Gold, Premium Craftsmanship",
        "benefits": ["Authentic 22K Gold", "Certified Purity", "Lifetime Warranty"],
        "stock_count": 15,
        "is_best_seller": True,
        "is_featured": True,
        "tags": ["necklace", "22k", "wedding", "premium"],
        "weight": "45g",
        "warranty": "Lifetime",
    },
    {
        "name": "Gold Bracelet Collection - Premium 22K",
        "price": 45000,
        "original_price": 50000,
        "images": ["/4.png"],
        "category": "Bracelets",
        "description": "Beautiful 22K gold bracelets with intricate designs.",
        "ingredients": "22K Pure Gold",
        "benefits": ["Premium Quality", "Multiple Styles", "Certified Gold"],
        "stock_count": 20,
        "is_best_seller": True,
        "tags": ["bracelet", "22k", "premium"],
        "weight": "25g",
    },
    {
        "name": "Gold Earrings Set - Classic Design",
        "price": 35000,
        "original_price": 38000,
        "images": ["/4.png"],
        "category": "Earrings",
        "description": "Elegant 22K gold earrings set with traditional patterns.",
        "ingredients": "22K Pure Gold",
        "benefits": ["Comfortable Design", "Hypoallergenic", "Timeless Style"],
        "stock_count": 30,
        "is_best_seller": True,
        "tags": ["earrings", "22k", "classic"],
        "weight": "12g",
    },
    {
        "name": "Premium Gold Ring - Solitaire Collection",
        "price": 55000,
        "original_price": 60000,
        "images": ["/4.png"],
        "category": "Rings",
        "description": "Stunning 22K gold ring with premium solitaire design.",
        "ingredients": "22K Pure Gold, Premium Stones",
        "benefits": ["Premium Design", "Certified Quality"],
        "stock_count": 12,
        "is_featured": True,
        "tags": ["ring", "solitaire", "luxury"],
        "weight": "8g",
    },
    {
        "name": "Argan Hair Oil",
        "price": None,
        "images": ["/hair-care.webp"],
        "category": "Hair",
        "description": "Nourishing argan oil blend for smooth, strong hair.",
        "ingredients": "Argan Oil, Vitamin E",
        "benefits": ["Reduces Frizz", "Adds Shine"],
        "stock_count": 0,
        "tags": ["hair", "oil"],
    },
]


@router.post("/seed")
def seed():
    if db["product"].count_documents({}) > 0:
        return {"success": True, "data": {"seeded": False}, "message": "Products already exist"}

    for p in DEMO_PRODUCTS:
        data = {**p, "slug": unique_slug(p["name"])}
        create_document("product", Product(**normalize_product(data)))

    count = db["product"].count_documents({})
    logger.info("Seeded %d demo products", count)
    return {"success": True, "data": {"seeded": True, "products": count}, "message": "Demo products created"}
