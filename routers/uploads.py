import logging
import os
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from catalog import slugify
from notifications import BACKEND_URL
from security import get_current_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["uploads"])

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", 10))
CHUNK_SIZE = 1024 * 1024


def stored_filename(original: str) -> str:
    base, ext = os.path.splitext(os.path.basename(original or ""))
    return f"{slugify(base) or 'image'}-{int(time.time() * 1000)}{ext.lower()}"


def save_image(upload: Optional[UploadFile]) -> str:
    """Write an uploaded image to UPLOAD_DIR and return its public path."""
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not (upload.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    os.makedirs(UPLOAD_DIR, exist_ok=True)
    filename = stored_filename(upload.filename)
    destination = os.path.join(UPLOAD_DIR, filename)
    max_bytes = MAX_UPLOAD_SIZE_MB * 1024 * 1024

    written = 0
    with open(destination, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                break
            out.write(chunk)

    if written > max_bytes:
        os.remove(destination)
        raise HTTPException(
            status_code=400,
            detail=f"Image file is too large. Please use an image smaller than {MAX_UPLOAD_SIZE_MB}MB.",
        )

    logger.info("Stored upload %s (%d bytes)", filename, written)
    return f"/uploads/{filename}"


def _uploaded(path: str, message: str) -> dict:
    return {
        "success": True,
        "url": f"{BACKEND_URL}{path}",
        "path": path,
        "message": message,
    }


@router.post("/image", status_code=201)
def upload_product_image(image: Optional[UploadFile] = File(None), admin=Depends(require_admin)):
    path = save_image(image)
    return _uploaded(path, "Image uploaded successfully")


@router.post("/profile-image", status_code=201)
def upload_profile_image(image: Optional[UploadFile] = File(None), user=Depends(get_current_user)):
    path = save_image(image)
    return _uploaded(path, "Profile image uploaded successfully")
