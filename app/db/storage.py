import logging
import re
import time
from datetime import timedelta
from typing import BinaryIO, Iterable, List, Optional, Sequence

from google.cloud import storage

from app.core.config import BUCKET_NAME
from app.db.firestore import initialize_app

logger = logging.getLogger("fleet.storage")

_bucket = None

def get_bucket():
    """
    Returns the portal's GCS bucket.
    In Cloud Run, this uses the default service account automatically.
    Locally, it looks for GOOGLE_APPLICATION_CREDENTIALS.
    """
    global _bucket
    if _bucket is None:
        if not BUCKET_NAME:
            raise ValueError("GCP_STORAGE_BUCKET environment variable not set")
        initialize_app()
        _bucket = storage.Client().bucket(BUCKET_NAME)
    return _bucket

# --- UPLOAD ---
def upload_file(file_obj: BinaryIO, path: str, content_type: Optional[str] = None, bucket=None) -> str:
    """Uploads a file to `path` and returns its public URL."""
    bucket = bucket or get_bucket()
    try:
        blob = bucket.blob(path)
        blob.upload_from_file(file_obj, content_type=content_type)
        return blob.public_url
    except Exception as e:
        logger.error(f"Error uploading {path}: {e}")
        raise

def upload_multiple_files(files: Sequence[tuple], base_path: str, bucket=None) -> List[str]:
    """
    Uploads (file_obj, filename, content_type) tuples under `base_path`.
    Names are prefixed with a timestamp and index so they never collide.
    """
    stamp = int(time.time() * 1000)
    return [
        upload_file(file_obj, f"{base_path}/{stamp}_{index}_{filename}", content_type, bucket=bucket)
        for index, (file_obj, filename, content_type) in enumerate(files)
    ]

# --- DOWNLOAD ---
def get_file_url(path: str, bucket=None) -> str:
    """Signed GET URL valid for one hour."""
    bucket = bucket or get_bucket()
    try:
        return bucket.blob(path).generate_signed_url(
            version="v4",
            expiration=timedelta(minutes=60),
            method="GET"
        )
    except Exception as e:
        logger.error(f"Error getting file URL for {path}: {e}")
        raise

# --- DELETE ---
def delete_file(path: str, bucket=None) -> None:
    bucket = bucket or get_bucket()
    try:
        bucket.blob(path).delete()
    except Exception as e:
        logger.error(f"Error deleting {path}: {e}")
        raise

def delete_multiple_files(paths: Iterable[str], bucket=None) -> None:
    for path in paths:
        delete_file(path, bucket=bucket)

def delete_folder(folder_path: str, bucket=None) -> None:
    """Deletes every object under the folder, nested prefixes included."""
    delete_multiple_files(list_files(folder_path, bucket=bucket), bucket=bucket)

# --- UTILITIES ---
def list_files(folder_path: str, bucket=None) -> List[str]:
    bucket = bucket or get_bucket()
    prefix = folder_path.rstrip("/") + "/"
    try:
        return [blob.name for blob in bucket.list_blobs(prefix=prefix)]
    except Exception as e:
        logger.error(f"Error listing {folder_path}: {e}")
        raise

def generate_inspection_image_path(booking_id: str, inspection_type: str, filename: str, timestamp: Optional[int] = None) -> str:
    """e.g. "inspections/pre/BK-1A2B3C4D5/1700000000000_front_tyre.jpg" """
    timestamp = timestamp if timestamp is not None else int(time.time() * 1000)
    sanitized = re.sub(r"[^a-zA-Z0-9.-]", "_", filename)
    return f"inspections/{inspection_type}/{booking_id}/{timestamp}_{sanitized}"
