"""
board/uploads.py -- Image upload validation and storage.

Accepted files:
  - extension .jpg, .jpeg or .png (case-insensitive), AND
  - content type image/jpeg or image/png.
Both must agree; a .png with a text/html content type is rejected.

Stored name: <epoch-millis>-<basename>. Only the basename of the client
filename is kept, so "../../etc/passwd.png" lands inside upload_dir as
"<ms>-passwd.png". The stored name is the reference a client later puts in
a message's images list; the board never dereferences it.

Size and count limits are enforced by the caller while reading the upload
stream (see api/routes/uploads.py) and re-checked here against the bytes
actually received.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from core.errors import ValidationError

logger = logging.getLogger("msgboard.board.uploads")

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png"}

UPLOAD_URL_PREFIX = "/uploads"


@dataclass
class IncomingImage:
    filename: str
    content_type: str
    data: bytes


@dataclass
class StoredImage:
    original_name: str
    filename: str
    path: str
    url: str
    size: int
    mimetype: str


def is_allowed_image(filename: str, content_type: str | None) -> bool:
    ext = Path(filename or "").suffix.lower()
    return ext in ALLOWED_EXTENSIONS and (content_type or "").lower() in ALLOWED_CONTENT_TYPES


def _stored_name(original: str, upload_dir: Path) -> str:
    base = Path(original).name or "image"
    stamp = int(time.time() * 1000)
    name = f"{stamp}-{base}"
    n = 1
    while (upload_dir / name).exists():
        name = f"{stamp}-{n}-{base}"
        n += 1
    return name


def save_images(
    images: list[IncomingImage],
    upload_dir: str | Path,
    max_bytes: int,
    max_files: int,
) -> list[StoredImage]:
    """Validate every image, then write them all to upload_dir.

    Validation runs over the whole batch before the first write, so a bad
    file in position 5 does not leave files 1-4 behind.

    Raises:
        ValidationError: too many files, a file over max_bytes, or a file
            that is not a JPEG/PNG.
    """
    if len(images) > max_files:
        raise ValidationError(f"At most {max_files} images per upload.", code="too_many_files")
    for image in images:
        if not is_allowed_image(image.filename, image.content_type):
            raise ValidationError(
                "Only JPEG and PNG images are supported.",
                code="unsupported_format",
                detail=Path(image.filename or "").name[:100],
            )
        if len(image.data) > max_bytes:
            raise ValidationError(
                f"Each image must be {max_bytes // (1024 * 1024)} MB or smaller.",
                code="file_too_large",
                detail=Path(image.filename or "").name[:100],
            )

    target = Path(upload_dir)
    target.mkdir(parents=True, exist_ok=True)
    stored: list[StoredImage] = []
    for image in images:
        name = _stored_name(image.filename, target)
        path = target / name
        path.write_bytes(image.data)
        stored.append(
            StoredImage(
                original_name=image.filename,
                filename=name,
                path=str(path),
                url=f"{UPLOAD_URL_PREFIX}/{name}",
                size=len(image.data),
                mimetype=image.content_type,
            )
        )
    logger.info("Stored %d uploaded image(s) in %s", len(stored), target)
    return stored
