"""
Product catalog rules shared by the product, cart, order and review routes.
"""
import math
import re
from typing import Iterable, Optional

from fastapi import HTTPException

from database import db, serialize_doc, to_object_id

DEFAULT_PRODUCT_IMAGE = "/4.webp"

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_KEYWORD_STRIP = re.compile(r"[^a-z0-9\s-]")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def slugify(value: str) -> str:
    return _SLUG_STRIP.sub("-", (value or "").lower()).strip("-")


def unique_slug(name: str, exclude_id=None) -> str:
    base = slugify(name) or "product"
    slug = base
    suffix = 2
    while True:
        query = {"slug": slug}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if not db["product"].find_one(query):
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def build_keywords(product: dict) -> list:
    existing = [k.lower().strip() for k in product.get("keywords") or [] if k and k.strip()]
    sources = [
        product.get("name"),
        product.get("category"),
        product.get("sub_category"),
        product.get("ingredients"),
        *(product.get("tags") or []),
        *(product.get("benefits") or []),
    ]
    generated = []
    for value in sources:
        if not value:
            continue
        generated.extend(_KEYWORD_STRIP.sub(" ", str(value).lower()).split())

    # dict keeps first-seen order
    return list(dict.fromkeys(existing + generated))


def primary_image(images: Optional[Iterable[str]]) -> str:
    for image in images or []:
        if image and image.strip():
            return image.strip()
    return DEFAULT_PRODUCT_IMAGE


def normalize_product(data: dict) -> dict:
    """Apply the derived-field rules to a product document before it is saved.

    A missing price marks the product as coming soon. When a price is set the
    original price falls back to it, the image url falls back to the first
    usable image, and the keyword list is rebuilt from the descriptive fields.
    """
    price = data.get("price")
    if price is None:
        data["price"] = None
        data["coming_soon"] = True
    else:
        price = float(price)
        if price < 0:
            raise HTTPException(status_code=400, detail="Product price must be a positive number")
        data["price"] = price
        data["coming_soon"] = False

    original_price = data.get("original_price")
    if original_price is not None:
        original_price = float(original_price)
        if original_price < 0:
            raise HTTPException(status_code=400, detail="Original price must be a positive number")
        data["original_price"] = original_price
    elif data["price"] is not None:
        data["original_price"] = data["price"]

    if not (data.get("image_url") or "").strip():
        data["image_url"] = primary_image(data.get("images"))

    stock_count = data.get("stock_count")
    if stock_count is not None and stock_count <= 0:
        data["in_stock"] = False

    data["keywords"] = build_keywords(data)
    return data


def is_coming_soon(product: dict) -> bool:
    return bool(product.get("coming_soon")) or product.get("price") is None


def is_out_of_stock(product: dict) -> bool:
    if product.get("in_stock") is False:
        return True
    stock_count = product.get("stock_count")
    return stock_count is not None and stock_count <= 0


def sale_percentage(price, original_price) -> int:
    if price is None or not original_price:
        return 0
    if price <= 0 or original_price <= price:
        return 0
    return round_half_up((1 - price / original_price) * 100)


def present_product(product: dict, exclude: tuple = ()) -> dict:
    data = serialize_doc(product, exclude=exclude)
    data["is_coming_soon"] = is_coming_soon(product)
    data["is_out_of_stock"] = is_out_of_stock(product)
    data["sale_percentage"] = sale_percentage(product.get("price"), product.get("original_price"))
    return data


def get_product_or_404(product_id) -> dict:
    oid = to_object_id(product_id)
    product = db["product"].find_one({"_id": oid}) if oid else None
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def recompute_rating(product_id) -> dict:
    """Refresh a product's denormalized rating from its reviews."""
    pid = str(product_id)
    stats = list(
        db["review"].aggregate([
            {"$match": {"product_id": pid}},
            {"$group": {"_id": "$product_id", "avg_rating": {"$avg": "$rating"}, "count": {"$sum": 1}}},
        ])
    )
    if stats:
        rating = round_half_up(stats[0]["avg_rating"] * 10) / 10
        num_reviews = stats[0]["count"]
    else:
        rating = 0
        num_reviews = 0

    oid = to_object_id(pid)
    if oid is not None:
        db["product"].update_one({"_id": oid}, {"$set": {"rating": rating, "num_reviews": num_reviews}})
    return {"rating": rating, "num_reviews": num_reviews}
