"""Candidate profile image storage on local disk"""
import os
import uuid
import logging
from typing import Optional

from flask import current_app
from werkzeug.utils import secure_filename

from workflow import WorkflowError

logger = logging.getLogger(__name__)

URL_PREFIX = '/uploads/candidates/'
IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.webp'}


def ensure_directory(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def image_extension(filename: str) -> Optional[str]:
    ext = os.path.splitext(secure_filename(filename or ''))[1].lower()
    return ext if ext in IMAGE_EXTENSIONS else None


def save_image(data: bytes, original_filename: str) -> str:
    """Write image bytes under a generated unique name and return its public URL"""
    ext = image_extension(original_filename)
    if not ext:
        raise WorkflowError("Only PNG, JPG, GIF or WEBP images are allowed")

    folder = current_app.config['UPLOAD_FOLDER']
    ensure_directory(folder)
    filename = f"candidate-{uuid.uuid4().hex}{ext}"
    with open(os.path.join(folder, filename), 'wb') as f:
        f.write(data)
    logger.info(f"✅ Saved candidate image {filename} ({len(data)} bytes)")
    return f"{URL_PREFIX}{filename}"


def save_uploaded_image(file_storage) -> str:
    return save_image(file_storage.read(), file_storage.filename)


def remove_image(url: Optional[str]) -> None:
    """Best-effort removal of a superseded image"""
    if not url or not url.startswith(URL_PREFIX):
        return
    filename = secure_filename(url[len(URL_PREFIX):])
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], filename)
    try:
        os.remove(path)
        logger.info(f"🗑 Removed candidate image {filename}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"⚠ Could not remove candidate image {filename}: {e}")
