"""
Local image storage for event uploads.

Files are written under UPLOAD_FOLDER with a random name and served back by
the gateway under UPLOAD_URL_PREFIX.
"""

import logging
import os
import uuid
from typing import Optional

from dotenv import load_dotenv
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from backend.common.errors import ValidationError

load_dotenv()

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def upload_folder() -> str:
    return os.getenv("UPLOAD_FOLDER", os.path.join(_PROJECT_ROOT, "uploads"))


def upload_url_prefix() -> str:
    return os.getenv("UPLOAD_URL_PREFIX", "/uploads").rstrip("/")


def image_extension(filename: str) -> Optional[str]:
    """
    Return the lower-cased extension of an allowed image filename, or None.
    """
    safe_name = secure_filename(filename or "")
    if "." not in safe_name:
        return None
    extension = safe_name.rsplit(".", 1)[1].lower()
    return extension if extension in ALLOWED_IMAGE_EXTENSIONS else None


def save_image(file: FileStorage) -> str:
    """
    Store an uploaded image and return the URL it is served from.

    Args:
        file (FileStorage): The uploaded file from request.files.

    Returns:
        str: Public URL of the stored file, e.g. "/uploads/<uuid>.png".

    Raises:
        ValidationError: If the file has no name or is not a jpg/jpeg/png.
    """
    extension = image_extension(file.filename)
    if not extension:
        raise ValidationError(
            f"image must be one of: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )

    folder = upload_folder()
    os.makedirs(folder, exist_ok=True)

    stored_name = f"{uuid.uuid4().hex}.{extension}"
    file.save(os.path.join(folder, stored_name))
    logging.info(f"[Storage] Saved upload '{file.filename}' as {stored_name}")

    return f"{upload_url_prefix()}/{stored_name}"


def delete_image(url: str) -> None:
    """
    Remove a file previously stored by save_image. Missing files are ignored.
    """
    stored_name = secure_filename(url.rsplit("/", 1)[-1])
    path = os.path.join(upload_folder(), stored_name)
    if stored_name and os.path.isfile(path):
        os.remove(path)
        logging.info(f"[Storage] Removed upload {stored_name}")
