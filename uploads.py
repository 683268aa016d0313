"""
Image uploads stored on local disk under UPLOAD_DIR and served at /uploads.

A batch is read and checked in full before anything is written, so a rejected
request leaves the directory untouched.
"""
import logging
import os
import re
import uuid
from typing import List, Tuple

from fastapi import HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from config import settings

log = logging.getLogger("animalmart.uploads")

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
PUBLIC_ID_RE = re.compile(r"^[0-9a-f]{32}\.(jpg|png|gif|webp)$")


def ensure_upload_dir():
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)


async def read_image(file: UploadFile) -> Tuple[str, bytes]:
    ext = IMAGE_EXTENSIONS.get(file.content_type or "")
    if ext is None:
        raise HTTPException(status_code=400, detail={"message": "Invalid file type. Only image files are allowed", "error": "INVALID_FILE_TYPE"})
    # Stop one byte past the limit instead of buffering the whole part.
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail={
                "message": f"File size too large. Maximum allowed size is {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
                "error": "FILE_SIZE_LIMIT_EXCEEDED",
            },
        )
    return ext, content


def _write(ext: str, content: bytes) -> dict:
    ensure_upload_dir()
    public_id = uuid.uuid4().hex + ext
    with open(os.path.join(settings.UPLOAD_DIR, public_id), "wb") as fh:
        fh.write(content)
    log.info("Stored upload %s (%d bytes)", public_id, len(content))
    return {"url": f"/uploads/{public_id}", "public_id": public_id, "size": len(content)}


async def save_image(file: UploadFile) -> dict:
    ext, content = await read_image(file)
    return await run_in_threadpool(_write, ext, content)


async def save_images(files: List[UploadFile]) -> List[dict]:
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(status_code=400, detail=f"At most {settings.MAX_UPLOAD_FILES} files per upload")
    checked = [await read_image(f) for f in files]
    return [await run_in_threadpool(_write, ext, content) for ext, content in checked]


def delete_image(public_id: str):
    if not PUBLIC_ID_RE.match(public_id):
        raise HTTPException(status_code=400, detail="Invalid image id")
    path = os.path.join(settings.UPLOAD_DIR, public_id)
    if not os.path.exists(path):
        raise HTTPException(status_code=404, detail="Image not found")
    os.remove(path)
    log.info("Deleted upload %s", public_id)
