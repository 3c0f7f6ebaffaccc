import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from catalog import get_product_or_404, primary_image, recompute_rating
from database import create_document, db, serialize_doc, to_object_id
from schemas import Review
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


class ReviewIn(BaseModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    review_text: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    product_title: Optional[str] = None
    product_image: Optional[str] = None


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    review_text: Optional[str] = Field(None, min_length=1)
    customer_name: Optional[str] = Field(None, min_length=1)


def _with_product(reviews: list) -> list:
    oids = [oid for oid in (to_object_id(r["product_id"]) for r in reviews) if oid is not None]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": oids}}, {"name": 1, "images": 1})}
    data = []
    for review in reviews:
        item = serialize_doc(review)
        product = products.get(review["product_id"])
        item["product"] = serialize_doc(product) if product else None
        data.append(item)
    return data


@router.get("")
def list_reviews():
    items = list(db["review"].find({"is_verified": True}).sort("created_at", -1).limit(20))
    return {"success": True, "data": _with_product(items)}


@router.get("/product/{product_id}")
def product_reviews(product_id: str):
    items = db["review"].find({"product_id": product_id}).sort("created_at", -1).limit(20)
    return {"success": True, "data": [serialize_doc(r) for r in items]}


@router.post("", status_code=201)
def create_review(payload: ReviewIn, user=Depends(get_current_user)):
    product = get_product_or_404(payload.product_id)
    pid = str(product["_id"])
    if db["review"].find_one({"product_id": pid, "user_id": str(user["_id"])}):
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    review = Review(
        product_id=pid,
        user_id=str(user["_id"]),
        customer_name=payload.customer_name.strip(),
        rating=payload.rating,
        review_text=payload.review_text.strip(),
        product_title=payload.product_title or product["name"],
        product_image=payload.product_image or primary_image(product.get("images")),
        is_verified=True,
    )
    review_id = create_document("review", review)
    recompute_rating(pid)
    created = db["review"].find_one({"_id": to_object_id(review_id)})
    return {"success": True, "data": serialize_doc(created), "message": "Review submitted successfully"}


def _editable_review(review_id: str, user: dict) -> dict:
    oid = to_object_id(review_id)
    review = db["review"].find_one({"_id": oid}) if oid else None
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    if review["user_id"] != str(user["_id"]) and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to modify this review")
    return review


@router.put("/{review_id}")
def update_review(review_id: str, payload: ReviewUpdate, user=Depends(get_current_user)):
    review = _editable_review(review_id, user)
    update = {k: v.strip() if isinstance(v, str) else v for k, v in payload.model_dump(exclude_none=True).items()}
    if not update:
        raise HTTPException(status_code=400, detail="Please provide at least one field to update")
    update["updated_at"] = datetime.now(timezone.utc)

    db["review"].update_one({"_id": review["_id"]}, {"$set": update})
    recompute_rating(review["product_id"])
    updated = db["review"].find_one({"_id": review["_id"]})
    return {"success": True, "data": serialize_doc(updated), "message": "Review updated successfully"}


@router.delete("/{review_id}")
def delete_review(review_id: str, user=Depends(get_current_user)):
    review = _editable_review(review_id, user)
    db["review"].delete_one({"_id": review["_id"]})
    recompute_rating(review["product_id"])
    logger.info("Review %s deleted by %s", review_id, user["email"])
    return {"success": True, "message": "Review deleted successfully"}
