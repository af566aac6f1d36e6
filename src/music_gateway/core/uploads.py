"""Local disk storage for multipart upload artifacts"""

import logging
import os
import time
from pathlib import Path
from typing import Dict

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile

from .errors import ValidationError

logger = logging.getLogger(__name__)

# Field name -> required MIME type prefix. albumCover and audioFile are the
# song media artifacts; only avatar is accepted by a route today.
ALLOWED_FIELDS: Dict[str, str] = {
    "avatar": "image/",
    "albumCover": "image/",
    "audioFile": "audio/",
}

CHUNK_SIZE = 1024 * 1024


class UploadStore:
    """
    Validates and persists uploaded files.

    Files are stored as ``<epoch-millis>-<original basename>``. Two uploads of
    the same name within the same millisecond overwrite each other.
    """

    def __init__(self, directory: str, max_bytes: int = 50 * 1024 * 1024):
        self.directory = Path(directory)
        self.max_bytes = max_bytes

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def validate(self, field: str, upload: UploadFile) -> None:
        """
        Check the field name and MIME type of an upload.

        Raises:
            ValidationError: If the field is unknown or the MIME type does not
                match what the field accepts
        """
        prefix = ALLOWED_FIELDS.get(field)
        if prefix is None:
            raise ValidationError(f"Unexpected upload field: {field}")

        content_type = upload.content_type or ""
        if not content_type.startswith(prefix):
            kind = prefix.rstrip("/")
            raise ValidationError(f"{field} must be an {kind} file")

        if not upload.filename:
            raise ValidationError(f"{field} is missing a filename")

    async def save(self, field: str, upload: UploadFile) -> str:
        """
        Validate and write an upload to disk.

        Args:
            field: Multipart field name the file arrived under
            upload: Uploaded file

        Returns:
            Stored filename, relative to the uploads directory

        Raises:
            ValidationError: On a bad field, MIME type, or oversized file
        """
        self.validate(field, upload)
        await aiofiles.os.makedirs(self.directory, exist_ok=True)

        original = os.path.basename(upload.filename)
        filename = f"{int(time.time() * 1000)}-{original}"
        destination = self.directory / filename

        written = 0
        try:
            async with aiofiles.open(destination, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise ValidationError(
                            f"{field} exceeds the maximum size of "
                            f"{self.max_bytes // (1024 * 1024)} MB"
                        )
                    await out.write(chunk)
        except Exception:
            await self.delete(filename)
            raise

        logger.info(f"Stored {field} upload as {filename} ({written} bytes)")
        return filename

    async def delete(self, filename: str) -> None:
        """Remove a stored upload; a missing file is ignored."""
        try:
            await aiofiles.os.remove(self.directory / filename)
        except FileNotFoundError:
            return
        logger.info(f"Removed upload {filename}")
