"""
api/routes/uploads.py -- Public image upload endpoint.

Routes:
  POST /public/upload  -- multipart field "images", up to 10 files (public)

File uploads:
  Each file is read up to max_upload_bytes + 1 bytes; one byte over the
  limit is enough to reject it without buffering the rest. Validation and
  storage rules live in board/uploads.py. Disk writes run in the thread
  pool so the event loop is not blocked.

read_uploads() is shared with POST /api/messages, which accepts the same
"images" files inline with the message form.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from api.models import UploadedFile, UploadResponse
from board.uploads import IncomingImage, save_images
from core.errors import ValidationError

router = APIRouter()


async def read_uploads(files: list[UploadFile], max_bytes: int, max_files: int) -> list[IncomingImage]:
    """Buffer each upload (bounded) into an IncomingImage, preserving order."""
    if len(files) > max_files:
        raise ValidationError(f"At most {max_files} images per upload.", code="too_many_files")
    incoming: list[IncomingImage] = []
    for upload in files:
        data = await upload.read(max_bytes + 1)
        incoming.append(
            IncomingImage(
                filename=upload.filename or "",
                content_type=upload.content_type or "",
                data=data,
            )
        )
    return incoming


@router.post("/public/upload", response_model=UploadResponse)
async def upload_images(
    request: Request,
    images: Optional[list[UploadFile]] = File(default=None),
) -> UploadResponse:
    """Store uploaded JPEG/PNG images and return their references."""
    settings = request.app.state.settings
    incoming = await read_uploads(images or [], settings.max_upload_bytes, settings.max_upload_files)
    stored = await run_in_threadpool(
        save_images,
        incoming,
        settings.upload_dir,
        settings.max_upload_bytes,
        settings.max_upload_files,
    )
    return UploadResponse(
        message="Files uploaded successfully.",
        files=[UploadedFile.from_stored(s) for s in stored],
    )
