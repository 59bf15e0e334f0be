"""Upload intake: validation and the per-user directory layout.

Every user gets ``<root>/<user_id>/upload`` for sources and
``<user_id>/transcode`` as the storage prefix for transcoded outputs.
"""

import os
import re
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

ALLOWED_VIDEO_TYPES = re.compile(r"mp4|mov|avi|mkv|quicktime|matroska|x-msvideo")
ALLOWED_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv")
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]{1,128}$")


class InvalidUploadError(Exception):
    """Upload rejected before any processing."""
    pass


def validate_user_id(user_id: str) -> str:
    if not _USER_ID_PATTERN.match(user_id) or user_id in (".", ".."):
        raise InvalidUploadError(f"Invalid user id: {user_id!r}")
    return user_id


def validate_video_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: Optional[int],
    max_bytes: int,
) -> str:
    """Check that an upload looks like a video and is small enough.

    Both the extension and the MIME type must name a video container.

    Returns:
        The lower-cased extension, including the dot

    Raises:
        InvalidUploadError: If the upload is rejected
    """
    if not filename:
        raise InvalidUploadError("No file selected")
    ext = os.path.splitext(filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidUploadError(f"Videos only, got extension {ext or '(none)'}")
    if not content_type or not content_type.startswith("video/") or not ALLOWED_VIDEO_TYPES.search(content_type):
        raise InvalidUploadError(f"Videos only, got content type {content_type}")
    if size is not None and size > max_bytes:
        raise InvalidUploadError(f"File too large: {size} bytes (limit {max_bytes})")
    return ext


class UploadLayout:
    """Filesystem layout for uploaded sources."""

    def __init__(self, root: str):
        self.root = Path(root)

    def upload_dir(self, user_id: str) -> Path:
        return self.root / validate_user_id(user_id) / "upload"

    def output_prefix(self, user_id: str) -> str:
        return f"{validate_user_id(user_id)}/transcode"

    def stored_name(self, ext: str) -> str:
        """Unique name for a stored source, e.g. ``video-1718000000000-1a2b3c4d.mp4``."""
        return f"video-{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:8]}{ext}"

    def save(self, user_id: str, fileobj: BinaryIO, ext: str, max_bytes: int) -> Path:
        """Copy an upload stream into the user's upload directory.

        The size limit is enforced while copying because clients may not
        announce the size up front.

        Raises:
            InvalidUploadError: If the stream exceeds ``max_bytes``
        """
        directory = self.upload_dir(user_id)
        directory.mkdir(parents=True, exist_ok=True)
        dest = directory / self.stored_name(ext)

        written = 0
        with open(dest, "xb") as out:
            while True:
                chunk = fileobj.read(1024 * 1024)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    out.close()
                    dest.unlink(missing_ok=True)
                    raise InvalidUploadError(f"File too large (limit {max_bytes} bytes)")
                out.write(chunk)
        return dest
