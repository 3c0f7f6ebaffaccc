import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, EmailStr

from database import create_document, db
from schemas import Contact, Newsletter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["contact"])


class NewsletterIn(BaseModel):
    email: EmailStr


@router.post("/contact", status_code=201)
def submit_contact(payload: Contact):
    data = payload.model_dump()
    data["email"] = data["email"].lower()
    contact_id = create_document("contact", data)
    logger.info("Contact message %s received from %s", contact_id, data["email"])
    return {"success": True, "data": {"id": contact_id}, "message": "Thank you for contacting us. We will get back to you soon."}


@router.post("/newsletter", status_code=201)
def subscribe(payload: NewsletterIn):
    email = payload.email.lower()
    existing = db["newsletter"].find_one({"email": email})
    if existing and existing.get("is_active"):
        raise HTTPException(status_code=400, detail="Email is already subscribed")

    now = datetime.now(timezone.utc)
    if existing:
        db["newsletter"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"is_active": True, "subscribed_at": now, "updated_at": now}},
        )
        return {"success": True, "message": "Welcome back! You have been resubscribed."}

    create_document("newsletter", Newsletter(email=email, subscribed_at=now))
    return {"success": True, "message": "Successfully subscribed to the newsletter"}
