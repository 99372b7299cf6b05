import logging
import uuid
from pathlib import Path
import aiofiles
from fastapi import UploadFile
from elearning.config import settings

logger = logging.getLogger(__name__)

UPLOAD_BASE_DIR = Path(settings.UPLOAD_DIR)
UPLOAD_BASE_DIR.mkdir(parents=True, exist_ok=True)

# Stored references are web paths, served by the /uploads static mount.
URL_PREFIX = "uploads"

async def save_upload(file: UploadFile | None) -> str | None:
    """Writes the upload under a random name and returns its stored reference."""
    if file is None or not file.filename:
        return None

    content = await file.read()
    extension = Path(file.filename).suffix.lower()
    stored_name = f"{uuid.uuid4().hex}{extension}"

    async with aiofiles.open(UPLOAD_BASE_DIR / stored_name, 'wb') as out_file:
        await out_file.write(content)

    logger.info(f"Stored upload {file.filename} as {stored_name} ({len(content)} bytes)")
    return f"{URL_PREFIX}/{stored_name}"

def remove_upload(reference: str | None) -> None:
    if not reference:
        return
    path = UPLOAD_BASE_DIR / Path(reference).name
    if path.exists():
        path.unlink()
        logger.info(f"Cleanup: Deleted {path}")
    else:
        logger.warning(f"Cleanup: {path} already gone")
