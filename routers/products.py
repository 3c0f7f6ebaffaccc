import logging
import math
import re
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from catalog import (
    get_product_or_404,
    normalize_product,
    present_product,
    unique_slug,
)
from database import create_document, db, serialize_doc
from notifications import notify_wishlist_users
from schemas import Product, ProductCategory
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

SORT_OPTIONS = {
    "price-low": [("price", 1)],
    "price-high": [("price", -1)],
    "rating": [("rating", -1)],
    "newest": [("created_at", -1)],
}
SEARCH_FIELDS = ("name", "description", "category", "sub_category", "ingredients", "slug", "tags", "benefits", "keywords")
LIST_EXCLUDE = ("keywords",)
NULLABLE_FIELDS = {"price", "original_price", "image_url", "sub_category", "ingredients", "weight", "dimensions", "warranty"}


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None
    images: List[str] = []
    category: ProductCategory
    sub_category: Optional[str] = None
    description: str = Field(..., min_length=1)
    ingredients: Optional[str] = None
    benefits: List[str] = []
    in_stock: bool = True
    stock_count: int = Field(0, ge=0)
    is_featured: bool = False
    is_best_seller: bool = False
    tags: List[str] = []
    keywords: List[str] = []
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    warranty: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[ProductCategory] = None
    sub_category: Optional[str] = None
    description: Optional[str] = None
    ingredients: Optional[str] = None
    benefits: Optional[List[str]] = None
    in_stock: Optional[bool] = None
    stock_count: Optional[int] = Field(None, ge=0)
    is_featured: Optional[bool] = None
    is_best_seller: Optional[bool] = None
    tags: Optional[List[str]] = None
    keywords: Optional[List[str]] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    warranty: Optional[str] = None


class PriceUpdate(BaseModel):
    price: Optional[float] = Field(None, ge=0, description="null marks the product as coming soon")
    original_price: Optional[float] = Field(None, ge=0)


def _present_all(cursor) -> list:
    return [present_product(p, exclude=LIST_EXCLUDE) for p in cursor]


@router.get("")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
    is_best_seller: Optional[bool] = None,
    is_featured: Optional[bool] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    filter_q = {}
    if category:
        filter_q["category"] = category
    if search:
        pattern = re.escape(search.strip())
        filter_q["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if min_price is not None or max_price is not None:
        filter_q["price"] = {}
        if min_price is not None:
            filter_q["price"]["$gte"] = min_price
        if max_price is not None:
            filter_q["price"]["$lte"] = max_price
    if in_stock:
        filter_q["in_stock"] = True
    if is_best_seller:
        filter_q["is_best_seller"] = True
    if is_featured:
        filter_q["is_featured"] = True

    sort_by = SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"])
    items = db["product"].find(filter_q).sort(sort_by).skip((page - 1) * limit).limit(limit)
    total = db["product"].count_documents(filter_q)

    return {
        "success": True,
        "data": _present_all(items),
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


@router.get("/bestsellers")
def best_sellers():
    items = db["product"].find({"is_best_seller": True}).sort([("rating", -1), ("num_reviews", -1)]).limit(9)
    return {"success": True, "data": _present_all(items)}


@router.get("/featured")
def featured_products():
    items = db["product"].find({"is_featured": True}).sort("created_at", -1).limit(8)
    return {"success": True, "data": _present_all(items)}


@router.get("/search")
def search_products(q: Optional[str] = None):
    if not q or not q.strip():
        return {"success": True, "data": []}

    pattern = re.escape(q.strip().lower())
    filter_q = {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS]}
    items = (
        db["product"]
        .find(filter_q)
        .sort([("is_featured", -1), ("is_best_seller", -1), ("rating", -1), ("created_at", -1)])
        .limit(50)
    )
    results = _present_all(items)
    logger.debug("Search %r matched %d products", q, len(results))
    return {"success": True, "data": results}


@router.get("/category/{category}")
def products_by_category(category: str):
    items = db["product"].find({"category": category}).sort("created_at", -1)
    return {"success": True, "data": _present_all(items)}


@router.get("/{product_id}")
def get_product(product_id: str):
    product = get_product_or_404(product_id)
    data = present_product(product)
    reviews = db["review"].find({"product_id": str(product["_id"])}).sort("created_at", -1).limit(20)
    data["reviews"] = [serialize_doc(r) for r in reviews]
    return {"success": True, "data": data}


@router.get("/{product_id}/related")
def related_products(product_id: str):
    product = get_product_or_404(product_id)
    items = db["product"].find({"category": product["category"], "_id": {"$ne": product["_id"]}}).limit(4)
    return {"success": True, "data": _present_all(items)}


# Admin catalog management
@router.post("", status_code=201)
def create_product(payload: ProductIn, admin=Depends(require_admin)):
    data = payload.model_dump()
    data["slug"] = unique_slug(payload.name)
    normalize_product(data)
    product = Product(**data)
    pid = create_document("product", product)
    created = get_product_or_404(pid)
    logger.info("Product %s created by %s", created["slug"], admin["email"])
    return {"success": True, "data": present_product(created), "message": "Product created successfully"}


def _apply_update(product: dict, changes: dict) -> dict:
    previous = dict(product)
    merged = {**product, **changes}

    if "name" in changes and changes["name"] != product.get("name"):
        merged["slug"] = unique_slug(changes["name"], exclude_id=product["_id"])
    # restocking without an explicit flag puts the product back on sale
    if (changes.get("stock_count") or 0) > 0 and "in_stock" not in changes:
        merged["in_stock"] = True
    normalize_product(merged)
    # validate the merged document against the collection schema
    Product(**{k: v for k, v in merged.items() if k in Product.model_fields})

    merged.pop("_id", None)
    merged["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": product["_id"]}, {"$set": merged})
    updated = db["product"].find_one({"_id": product["_id"]})

    try:
        notify_wishlist_users(updated, previous)
    except Exception:
        logger.exception("Wishlist notification failed for product %s", product["_id"])
    return updated


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin=Depends(require_admin)):
    product = get_product_or_404(product_id)
    changes = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    updated = _apply_update(product, changes)
    return {"success": True, "data": present_product(updated), "message": "Product updated successfully"}


@router.put("/{product_id}/price")
def update_product_price(product_id: str, payload: PriceUpdate, admin=Depends(require_admin)):
    product = get_product_or_404(product_id)
    changes = payload.model_dump(exclude_unset=True)
    if "price" not in changes:
        raise HTTPException(status_code=400, detail="Price is required (null marks the product as coming soon)")
    if changes["price"] is None:
        changes["original_price"] = None
    elif "original_price" not in changes:
        changes["original_price"] = None
    updated = _apply_update(product, changes)
    return {"success": True, "data": present_product(updated), "message": "Product price updated successfully"}


@router.delete("/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin)):
    product = get_product_or_404(product_id)
    pid = str(product["_id"])
    db["product"].delete_one({"_id": product["_id"]})
    db["review"].delete_many({"product_id": pid})
    db["user"].update_many({}, {"$pull": {"wishlist": pid, "cart": {"product_id": pid}}})
    logger.info("Product %s deleted by %s", pid, admin["email"])
    return {"success": True, "message": "Product deleted successfully"}
