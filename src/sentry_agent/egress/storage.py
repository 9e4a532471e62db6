"""
Image Storage
=============

Persistence of winning frames.

This module provides:
    - build_storage_key: the key layout shared by every backend
    - ImageStore: protocol used by the batch processor
    - MinioImageStore: S3-compatible object storage (MinIO, AWS S3)
    - LocalImageStore: files under a local directory (development)

Key layout:
    "{stream name, '/' -> '_'}/{YYYY-mm-dd_HH:MM:SS}_{confidence}_{position}"

Design Rules:
    - One best-effort attempt per detection, no retries
    - Every backend failure surfaces as StorageError
"""

import io
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from minio import Minio
from minio.error import S3Error


logger = logging.getLogger(__name__)


STORAGE_TIME_FORMAT = "%Y-%m-%d_%H:%M:%S"


class StorageError(Exception):
    """Raised when an image cannot be stored."""
    pass


def format_confidence(confidence: float) -> str:
    """Compact confidence text used in keys ('80', '97.4312')."""
    return f"{confidence:g}"


def build_storage_key(
    stream_name: str,
    timestamp: datetime,
    confidence: float,
    position_index: int,
) -> str:
    """
    Build the storage key of a detection.

    Args:
        stream_name: Stream name; '/' is replaced by '_'
        timestamp: Detection time
        confidence: Winning confidence (0-100)
        position_index: Index of the winning frame in its batch

    Returns:
        Key such as "garage_motionDetector/2024-05-01_12:00:00_80_1"
    """
    prefix = stream_name.replace("/", "_")
    return (
        f"{prefix}/{timestamp.strftime(STORAGE_TIME_FORMAT)}_"
        f"{format_confidence(confidence)}_{position_index}"
    )


class ImageStore(Protocol):
    """Protocol for image storage backends."""

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        """
        Store data under key.

        Raises:
            StorageError: If the write fails
        """
        ...


class MinioImageStore:
    """
    S3-compatible image store backed by the MinIO client.

    The bucket is created on first use if it does not exist.

    Attributes:
        bucket: Target bucket name
        endpoint: S3/MinIO endpoint (host[:port])
    """

    def __init__(
        self,
        endpoint: str,
        bucket: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        secure: bool = True,
        region: Optional[str] = None,
        client: Optional[Minio] = None,
    ) -> None:
        self.endpoint = endpoint
        self.bucket = bucket
        self._client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )
        self._bucket_ready: bool = False
        self._bucket_lock = threading.Lock()

        logger.info(f"MinioImageStore initialized: endpoint={endpoint}, bucket={bucket}")

    def _ensure_bucket(self) -> None:
        with self._bucket_lock:
            if self._bucket_ready:
                return
            if not self._client.bucket_exists(self.bucket):
                self._client.make_bucket(self.bucket)
                logger.info(f"Created bucket: {self.bucket}")
            self._bucket_ready = True

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        try:
            self._ensure_bucket()
            self._client.put_object(
                self.bucket,
                key,
                io.BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except S3Error as e:
            raise StorageError(f"S3 error storing {self.bucket}/{key}: {e}")
        except Exception as e:
            raise StorageError(f"Failed to store {self.bucket}/{key}: {e}")

        logger.info(f"Stored {len(data)} bytes to {self.bucket}/{key}")


class LocalImageStore:
    """
    Image store writing files under a local directory.

    Attributes:
        root: Directory that receives one file per key
    """

    def __init__(self, root: str) -> None:
        self.root = Path(root)
        logger.info(f"LocalImageStore initialized: root={self.root}")

    def path_for(self, key: str) -> Path:
        """Filesystem path of a key."""
        return self.root / f"{key}.jpg"

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")

        logger.info(f"Stored {len(data)} bytes to {path}")
