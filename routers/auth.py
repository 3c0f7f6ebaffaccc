import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from database import create_document, db, serialize_doc, to_object_id
from mailer import send_mail
from routers.cart import populated_cart
from routers.wishlist import populated_wishlist
from schemas import Address, User
from security import (
    get_current_user,
    get_password_hash,
    public_user,
    require_admin,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

RESET_CODE_TTL = timedelta(minutes=5)


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    profile_image: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    phone_dial_code: Optional[str] = None


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    profile_image: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    phone_dial_code: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=6)


class ForgotPasswordBody(BaseModel):
    email: EmailStr


class VerifyCodeBody(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6)


class ResetPasswordBody(VerifyCodeBody):
    new_password: str = Field(..., min_length=6)


class AdminResetPasswordBody(BaseModel):
    email: EmailStr
    new_password: str = Field(..., min_length=6)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


@router.post("/register", status_code=201)
def register(payload: RegisterBody):
    email = _normalize_email(payload.email)
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists with this email")

    # role is never taken from the request body
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=get_password_hash(payload.password),
        phone=_strip(payload.phone),
        gender=payload.gender,
        profile_image=_strip(payload.profile_image) or "",
        country=_strip(payload.country),
        country_code=_strip(payload.country_code),
        phone_dial_code=_strip(payload.phone_dial_code),
    )
    user_id = create_document("user", user)
    created = db["user"].find_one({"_id": to_object_id(user_id)})
    logger.info("Registered user %s", email)
    return {"success": True, "data": public_user(created, with_token=True), "message": "Account created successfully"}


def _authenticate(email: str, password: str) -> dict:
    user = db["user"].find_one({"email": _normalize_email(email)})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return user


@router.post("/login")
def login(payload: LoginBody):
    user = _authenticate(payload.email, payload.password)
    return {"success": True, "data": public_user(user, with_token=True), "message": "Successfully signed in"}


@router.post("/admin/login")
def admin_login(payload: LoginBody):
    user = _authenticate(payload.email, payload.password)
    if user.get("role") != "admin":
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"success": True, "data": public_user(user, with_token=True), "message": "Successfully signed in"}


@router.get("/me")
def me(user=Depends(get_current_user)):
    data = serialize_doc(user, exclude=("password_hash", "reset_code", "reset_code_expires_at"))
    data["wishlist"] = populated_wishlist(user["_id"])
    data["cart"] = populated_cart(user["_id"])
    return {"success": True, "data": data}


@router.put("/profile")
def update_profile(payload: ProfileUpdate, user=Depends(get_current_user)):
    update = {}

    if payload.email is not None:
        email = _normalize_email(payload.email)
        if email != user["email"]:
            existing = db["user"].find_one({"email": email})
            if existing and existing["_id"] != user["_id"]:
                raise HTTPException(status_code=400, detail="A user with this email already exists")
            update["email"] = email

    for field in ("name", "phone", "profile_image", "country", "country_code", "phone_dial_code"):
        value = getattr(payload, field)
        if value is not None:
            update[field] = value.strip()
    if payload.gender is not None:
        update["gender"] = payload.gender

    if payload.new_password:
        if not payload.current_password:
            raise HTTPException(status_code=400, detail="Current password is required to set a new password")
        if not verify_password(payload.current_password, user.get("password_hash", "")):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        update["password_hash"] = get_password_hash(payload.new_password)

    update["updated_at"] = datetime.now(timezone.utc)
    db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    refreshed = db["user"].find_one({"_id": user["_id"]})

    data = public_user(refreshed, with_token=True)
    data["addresses"] = refreshed.get("addresses", [])
    return {"success": True, "data": data, "message": "Account updated successfully"}


# Password reset
def _matching_reset_user(email: str, code: str) -> dict:
    user = db["user"].find_one({"email": _normalize_email(email)})
    if not user or not user.get("reset_code") or not user.get("reset_code_expires_at"):
        raise HTTPException(status_code=400, detail="Invalid or expired code")

    expires_at = user["reset_code_expires_at"]
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if not secrets.compare_digest(user["reset_code"], code.strip()) or datetime.now(timezone.utc) > expires_at:
        raise HTTPException(status_code=400, detail="Invalid or expired code")
    return user


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordBody):
    email = _normalize_email(payload.email)
    user = db["user"].find_one({"email": email})
    if not user:
        return {"success": True, "message": "If that email is registered, a code has been sent."}

    code = f"{secrets.randbelow(900000) + 100000}"
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"reset_code": code, "reset_code_expires_at": datetime.now(timezone.utc) + RESET_CODE_TTL}},
    )
    send_mail(
        email,
        "Valora Gold Password Reset Code",
        f"<p>Your password reset code is <strong>{code}</strong>. This code will expire in 5 minutes.</p>",
        f"Your password reset code is {code}. This code will expire in 5 minutes.",
    )
    return {"success": True, "message": "Reset code sent to your email."}


@router.post("/verify-reset-code")
def verify_reset_code(payload: VerifyCodeBody):
    _matching_reset_user(payload.email, payload.code)
    return {"success": True, "message": "Code verified successfully"}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordBody):
    user = _matching_reset_user(payload.email, payload.code)
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password_hash": get_password_hash(payload.new_password), "updated_at": datetime.now(timezone.utc)},
            "$unset": {"reset_code": "", "reset_code_expires_at": ""},
        },
    )
    return {"success": True, "message": "Password reset successfully"}


@router.post("/admin/reset-password")
def admin_reset_password(payload: AdminResetPasswordBody, admin=Depends(require_admin)):
    result = db["user"].update_one(
        {"email": _normalize_email(payload.email)},
        {"$set": {"password_hash": get_password_hash(payload.new_password), "updated_at": datetime.now(timezone.utc)}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Admin %s reset password for %s", admin["email"], payload.email)
    return {"success": True, "message": "Password reset successfully"}


# Saved addresses
def _save_addresses(user: dict, addresses: list) -> list:
    if addresses and not any(a.get("is_default") for a in addresses):
        addresses[0]["is_default"] = True
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"addresses": addresses, "updated_at": datetime.now(timezone.utc)}},
    )
    return addresses


def _with_single_default(addresses: list, default_index: int) -> list:
    for i, address in enumerate(addresses):
        address["is_default"] = i == default_index
    return addresses


@router.get("/addresses")
def list_addresses(user=Depends(get_current_user)):
    return {"success": True, "data": user.get("addresses", [])}


@router.post("/addresses", status_code=201)
def add_address(payload: Address, user=Depends(get_current_user)):
    addresses = list(user.get("addresses", []))
    addresses.append(payload.model_dump())
    if payload.is_default:
        addresses = _with_single_default(addresses, len(addresses) - 1)
    return {"success": True, "data": _save_addresses(user, addresses), "message": "Address added"}


@router.put("/addresses/{index}")
def update_address(index: int, payload: Address, user=Depends(get_current_user)):
    addresses = list(user.get("addresses", []))
    if index < 0 or index >= len(addresses):
        raise HTTPException(status_code=404, detail="Address not found")
    addresses[index] = payload.model_dump()
    if payload.is_default:
        addresses = _with_single_default(addresses, index)
    return {"success": True, "data": _save_addresses(user, addresses), "message": "Address updated"}


@router.delete("/addresses/{index}")
def delete_address(index: int, user=Depends(get_current_user)):
    addresses = list(user.get("addresses", []))
    if index < 0 or index >= len(addresses):
        raise HTTPException(status_code=404, detail="Address not found")
    addresses.pop(index)
    return {"success": True, "data": _save_addresses(user, addresses), "message": "Address removed"}
