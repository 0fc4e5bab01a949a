import base64
import io
import logging
from typing import Tuple

from PIL import Image

from rx_reminder.core.config import OCR_COMPRESS_ABOVE_BYTES, OCR_JPEG_QUALITY, OCR_MAX_DIMENSION

logger = logging.getLogger(__name__)


def compress_image(
    data: bytes,
    max_dimension: int = OCR_MAX_DIMENSION,
    quality: int = OCR_JPEG_QUALITY,
) -> bytes:
    """Downscale to fit max_dimension (keeping aspect ratio) and re-encode as JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGB")
        img.thumbnail((max_dimension, max_dimension))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def prepare_image(
    data: bytes,
    content_type: str = "image/jpeg",
    threshold: int = OCR_COMPRESS_ABOVE_BYTES,
) -> Tuple[bytes, str]:
    """
    Phone photos are often several MB; shrink anything above the threshold.
    If compression fails the original bytes are sent as-is.
    """
    if len(data) <= threshold:
        return data, content_type or "image/jpeg"
    try:
        smaller = compress_image(data)
    except (OSError, ValueError) as e:
        logger.warning("Image compression failed, using original: %s", e)
        return data, content_type or "image/jpeg"

    logger.info(
        "Image compressed from %.2fMB to %.2fMB",
        len(data) / 1024 / 1024,
        len(smaller) / 1024 / 1024,
    )
    return smaller, "image/jpeg"


def to_data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"
