import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import db, create_document
from routers import admin, auth, cart, contact, orders, products, reviews, shipping, uploads, wishlist
from routers.uploads import UPLOAD_DIR
from schemas import User
from security import get_password_hash
from notifications import FRONTEND_URL

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@valoragold.com").strip().lower()
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD")

app = FastAPI(title="Valora Gold API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, products, cart, wishlist, orders, reviews, admin, shipping, uploads, contact):
    app.include_router(module.router)

os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")


# Error envelopes
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


def _validation_response(errors: list) -> JSONResponse:
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    details = [{"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")} for e in errors]
    return JSONResponse(status_code=400, content={"success": False, "message": message, "errors": details})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _validation_response(exc.errors())


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return _validation_response(exc.errors())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


# Startup
def ensure_indexes():
    db["user"].create_index("email", unique=True)
    db["product"].create_index("slug", unique=True)
    db["order"].create_index("order_number", unique=True)


def ensure_default_admin():
    if not DEFAULT_ADMIN_PASSWORD:
        logger.info("DEFAULT_ADMIN_PASSWORD not set, skipping default admin bootstrap")
        return

    existing = db["user"].find_one({"email": DEFAULT_ADMIN_EMAIL})
    if existing:
        if existing.get("role") != "admin" or not existing.get("is_email_verified"):
            db["user"].update_one(
                {"_id": existing["_id"]},
                {"$set": {"role": "admin", "is_email_verified": True, "updated_at": datetime.now(timezone.utc)}},
            )
            logger.info("Promoted %s to admin", DEFAULT_ADMIN_EMAIL)
        return

    admin_user = User(
        name="Valora Gold Admin",
        email=DEFAULT_ADMIN_EMAIL,
        password_hash=get_password_hash(DEFAULT_ADMIN_PASSWORD),
        role="admin",
        is_email_verified=True,
    )
    create_document("user", admin_user)
    logger.info("Created default admin %s", DEFAULT_ADMIN_EMAIL)


@app.on_event("startup")
def on_startup():
    try:
        ensure_indexes()
        ensure_default_admin()
    except PyMongoError as e:
        logger.error("Database setup failed: %s", e)


# Routes
@app.get("/")
def root():
    return {"success": True, "message": "Valora Gold API is running"}


@app.get("/api/health")
def health():
    return {
        "success": True,
        "message": "Valora Gold API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
