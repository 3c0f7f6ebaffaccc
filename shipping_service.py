import logging
import math
import os
from datetime import datetime, timezone
from typing import Optional

from catalog import round_half_up
from database import db

logger = logging.getLogger(__name__)

SHIPPING_SETTING_KEY = "shippingCharge"
DEFAULT_SHIPPING_CHARGE = int(os.getenv("DEFAULT_SHIPPING_CHARGE", 200))


class InvalidShippingAmount(ValueError):
    pass


def parse_amount(amount) -> Optional[int]:
    if isinstance(amount, bool) or amount is None:
        return None
    try:
        numeric = float(amount)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric < 0:
        return None
    return round_half_up(numeric)


def get_shipping_charge() -> int:
    setting = db["setting"].find_one({"key": SHIPPING_SETTING_KEY})
    if not setting:
        return DEFAULT_SHIPPING_CHARGE

    stored = setting.get("value")
    if isinstance(stored, dict):
        stored = stored.get("amount")
    parsed = parse_amount(stored)
    if parsed is None:
        logger.warning("Stored shipping charge %r is invalid, using default", stored)
        return DEFAULT_SHIPPING_CHARGE
    return parsed


def update_shipping_charge(amount, updated_by: Optional[str] = None) -> dict:
    parsed = parse_amount(amount)
    if parsed is None:
        raise InvalidShippingAmount("Shipping amount must be a non-negative number")

    now = datetime.now(timezone.utc)
    update = {"key": SHIPPING_SETTING_KEY, "value": {"amount": parsed}, "updated_at": now}
    if updated_by:
        update["updated_by"] = updated_by
    db["setting"].update_one(
        {"key": SHIPPING_SETTING_KEY},
        {"$set": update, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    logger.info("Shipping charge set to %s", parsed)
    return {"amount": parsed, "updated_at": now}
