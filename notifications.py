"""
Admin notifications and wishlist availability emails.

Both run after another write has succeeded. Failures are logged and never
propagate to the caller.
"""
import html
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from catalog import DEFAULT_PRODUCT_IMAGE, is_coming_soon, is_out_of_stock
from database import create_document, db
from mailer import send_mail
from schemas import Notification

logger = logging.getLogger(__name__)

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000").rstrip("/")
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", 5))

COMING_SOON_AVAILABLE = "coming_soon_available"
BACK_IN_STOCK = "back_in_stock"
OUT_OF_STOCK = "out_of_stock"
COMING_SOON = "coming_soon"

_MESSAGES = {
    COMING_SOON_AVAILABLE: ('Great news! "{name}" is now available for purchase!', '"{name}" is Now Available!'),
    BACK_IN_STOCK: ('Good news! "{name}" is back in stock!', '"{name}" is Back in Stock!'),
    OUT_OF_STOCK: ('Update: "{name}" is currently out of stock.', '"{name}" is Out of Stock'),
    COMING_SOON: ('Update: "{name}" is now marked as coming soon.', '"{name}" is Coming Soon'),
}

_DETAILS = {
    COMING_SOON_AVAILABLE: "The product you added to your wishlist is now available with a price and ready to purchase!",
    BACK_IN_STOCK: "Stock has been added to the product you were waiting for. Don't miss out!",
    OUT_OF_STOCK: "The product you added to your wishlist is currently out of stock. We'll notify you when it becomes available again.",
    COMING_SOON: "The product you added to your wishlist has been marked as coming soon. We'll notify you when it becomes available for purchase.",
}


def create_notification(title: str, message: str, notification_type: str = "system", metadata: Optional[dict] = None) -> Optional[str]:
    try:
        notification = Notification(title=title, message=message, type=notification_type, metadata=metadata or {})
        return create_document("notification", notification)
    except Exception:
        logger.exception("Failed to record %s notification %r", notification_type, title)
        return None


def notify_new_order(order: dict, customer: dict) -> None:
    item_count = sum(item["quantity"] for item in order["items"])
    create_notification(
        title="New order received",
        message=f"{customer.get('name') or 'A customer'} placed order {order['order_number']} "
                f"({item_count} item(s), total Rs. {order['total']:,.0f})",
        notification_type="order",
        metadata={
            "order_id": order.get("id"),
            "order_number": order["order_number"],
            "user_id": order["user_id"],
            "total": order["total"],
        },
    )


def notify_low_stock(product: dict) -> None:
    stock_count = product.get("stock_count", 0)
    if stock_count > LOW_STOCK_THRESHOLD:
        return
    if stock_count <= 0:
        title, message = "Product out of stock", f"{product['name']} is now out of stock"
    else:
        title, message = "Low stock", f"{product['name']} has only {stock_count} left in stock"
    create_notification(
        title=title,
        message=message,
        notification_type="inventory",
        metadata={"product_id": str(product["_id"]), "stock_count": stock_count},
    )


def _has_price(product: dict) -> bool:
    price = product.get("price")
    return isinstance(price, (int, float)) and price > 0


def detect_availability_change(previous: dict, current: dict) -> Optional[str]:
    """Classify how a product's availability changed, or None if it did not."""
    was_coming_soon = is_coming_soon(previous)
    was_out_of_stock = is_out_of_stock(previous)
    is_now_coming_soon = is_coming_soon(current)
    is_now_out_of_stock = is_out_of_stock(current)
    is_now_available = not is_now_coming_soon and _has_price(current)

    if was_coming_soon and is_now_available:
        return COMING_SOON_AVAILABLE
    if was_out_of_stock and not is_now_out_of_stock:
        return BACK_IN_STOCK
    if not was_out_of_stock and is_now_out_of_stock:
        return OUT_OF_STOCK
    if _has_price(previous) and is_now_coming_soon and not was_coming_soon:
        return COMING_SOON
    return None


def _absolute_image_url(product: dict) -> str:
    images = product.get("images") or []
    image = (product.get("image_url") or (images[0] if images else "") or "").strip() or DEFAULT_PRODUCT_IMAGE
    if image.startswith(("http://", "https://", "data:")):
        return image
    path = image if image.startswith("/") else f"/{image}"
    base = BACKEND_URL if path.startswith("/uploads/") else FRONTEND_URL
    return f"{base}{path}"


def _price_line(product: dict) -> str:
    if _has_price(product) and not product.get("coming_soon"):
        return f"Price: Rs. {product['price']:,.0f}"
    return "Price: Coming Soon"


def build_wishlist_email(product: dict, change: str, user_name: str) -> dict:
    headline_template, subject_template = _MESSAGES[change]
    headline = headline_template.format(name=product["name"])
    product_url = f"{FRONTEND_URL}/product/{product['_id']}"
    price_line = _price_line(product)
    details = _DETAILS[change]

    text = (
        f"Hello {user_name}!\n\n{headline}\n\n{details}\n\n"
        f"Product: {product['name']}\n{price_line}\nView Product: {product_url}\n\n"
        f"This email was sent because you added this product to your wishlist.\n"
        f"Manage your wishlist: {FRONTEND_URL}/wishlist\n\n"
        f"(c) {datetime.now(timezone.utc).year} Valora Gold. All rights reserved."
    )
    body = (
        f"<h2>Hello {html.escape(user_name)}!</h2>"
        f"<p><strong>{html.escape(headline)}</strong></p>"
        f"<p>{html.escape(details)}</p>"
        f'<img src="{html.escape(_absolute_image_url(product))}" alt="{html.escape(product["name"])}" width="240" />'
        f"<p>{html.escape(price_line)}</p>"
        f'<p><a href="{html.escape(product_url)}">View Product</a></p>'
        f"<p><small>This email was sent because you added this product to your wishlist.</small></p>"
    )
    return {"subject": subject_template.format(name=product["name"]), "text": text, "html": body, "headline": headline}


def notify_wishlist_users(product: dict, previous: dict) -> dict:
    """Email every user who wishlisted ``product`` about an availability change."""
    change = detect_availability_change(previous, product)
    if change is None:
        logger.debug("No availability change for product %s", product.get("_id"))
        return {"sent": 0, "skipped": True}

    product_id = str(product["_id"])
    users = list(db["user"].find({"wishlist": product_id, "email": {"$exists": True, "$ne": ""}}))
    create_notification(
        title="Wishlist update",
        message=_MESSAGES[change][0].format(name=product["name"]),
        notification_type="inventory",
        metadata={"product_id": product_id, "change": change, "recipients": len(users)},
    )

    sent = 0
    for user in users:
        email = build_wishlist_email(product, change, user.get("name") or "Valued Customer")
        if send_mail(user["email"], email["subject"], email["html"], email["text"]):
            sent += 1
    logger.info("Wishlist %s notification for %s: %d/%d emails sent", change, product_id, sent, len(users))
    return {"sent": sent, "users": len(users), "change": change}
