"""
Image Encoder
=============

Dedicated module for encoding captured frames into JPEG bytes, the
transport encoding expected by the detector, the object store and the
notification attachment.

Design Rules:
    - This is the ONLY place in the codebase that encodes images
    - Validates shape and dtype before encoding
    - Fails fast with ImageEncodeError on invalid frames
"""

import logging

import cv2
import numpy as np

from sentry_agent.stream.frame import Frame, FrameReleasedError


logger = logging.getLogger(__name__)


class ImageEncodeError(Exception):
    """Raised when image encoding fails."""
    pass


def encode_image_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    """
    Encode a BGR or grayscale image to JPEG bytes.

    Args:
        image: np.ndarray (H, W) or (H, W, 3), dtype=uint8
        quality: JPEG quality in [1, 100]

    Returns:
        JPEG-encoded bytes

    Raises:
        ImageEncodeError: If the image is invalid or encoding fails
    """
    if image.dtype != np.uint8:
        raise ImageEncodeError(f"Invalid dtype: {image.dtype}")

    if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] != 3):
        raise ImageEncodeError(f"Invalid image shape: {image.shape}")

    if image.size == 0:
        raise ImageEncodeError("Empty image")

    try:
        ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    except cv2.error as e:
        raise ImageEncodeError(f"cv2.imencode failed: {e}")

    if not ok:
        raise ImageEncodeError("cv2.imencode returned False")

    return buffer.tobytes()


def encode_frame_jpeg(frame: Frame) -> bytes:
    """
    Encode a captured frame to JPEG bytes.

    Args:
        frame: Frame that has not been released

    Returns:
        JPEG-encoded bytes

    Raises:
        ImageEncodeError: If the frame was released or encoding fails
    """
    try:
        image = frame.require_image()
    except FrameReleasedError as e:
        raise ImageEncodeError(str(e))

    try:
        return encode_image_jpeg(image)
    except ImageEncodeError as e:
        raise ImageEncodeError(f"Failed to encode frame {frame.label}: {e}")
