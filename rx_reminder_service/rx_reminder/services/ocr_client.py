import logging
import os
from typing import Any, Dict, Optional

import requests

from rx_reminder.core.config import (
    OCR_BASE_URL,
    OCR_MAX_TOKENS,
    OCR_MODEL,
    OCR_PROVIDER,
    OCR_TIMEOUT_S,
)
from rx_reminder.services.image_prep import prepare_image, to_data_url

logger = logging.getLogger(__name__)

OCR_PROMPT = """Extract and format only medicine details from prescription images in a structured format.

Extract the following medicine details from the provided prescription image:
- Medicine Name
- Dosage (e.g., 100 mg, 25 mg)
- Frequency (e.g., once daily, twice daily)
- Timing (e.g., morning, afternoon, night)
- Special Instructions (e.g., before/after food)
- Duration (e.g., for 7 days, for 1 month)

Format Output as:
[Medicine Name] ([Dosage]): [Frequency], [Timing], [Special Instructions], for [Duration].

Example Output:
FREXT (100 mg): 1 tablet, once daily after breakfast, for 1 month.
CLOFRANIL (25 mg): 1 tablet, once daily at night, for 1 month.
SIZODON (MD 0.5): 1 tablet, once daily at night, for 1 month.

Notes:
- Ignore patient details, diagnosis, and doctor/hospital info.
- Ensure output is clean and follows the structured format.
- If any information is missing, skip it without adding assumptions."""


class OcrError(RuntimeError):
    """
    The OCR call failed. str(e) carries the technical detail for logs;
    user_message is the text safe to show.
    """

    user_message = "The text-recognition service returned an error. Please try again in a moment."

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OcrTimeout(OcrError):
    user_message = (
        "Request timed out. The image may be too complex or the service is currently busy. "
        "Please try again."
    )


class OcrUnavailable(OcrError):
    user_message = "Could not reach the text-recognition service. Check your connection and try again."


class OcrInputError(OcrError):
    """Missing image, missing credential, or nothing extracted. Not worth retrying."""

    @property
    def user_message(self) -> str:
        return str(self)


class OcrQuotaExceeded(OcrError):
    """HTTP 402 from the vision service."""

    user_message = "API usage limit reached. You can try the sample prescription instead."

    def __init__(self, message: str = "API usage limit reached."):
        super().__init__(message, status_code=402)


def _error_detail(r: requests.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text or r.reason or ""
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err)
        return str(data.get("message") or err or r.reason)
    return r.text


def build_messages(image_url: str, prompt: str = OCR_PROMPT) -> list:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        }
    ]


def together_chat_text(
    image_url: str,
    api_key: str,
    model: Optional[str] = None,
    timeout_s: Optional[int] = None,
) -> str:
    """
    Calls an OpenAI-compatible /chat/completions endpoint and returns the
    assistant message text.
    """
    url = f"{OCR_BASE_URL}/chat/completions"
    payload: Dict[str, Any] = {
        "model": model or OCR_MODEL,
        "messages": build_messages(image_url),
        "max_tokens": OCR_MAX_TOKENS,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    try:
        r = requests.post(url, json=payload, headers=headers, timeout=timeout_s or OCR_TIMEOUT_S)
    except requests.Timeout as e:
        raise OcrTimeout(f"Request timed out after {timeout_s or OCR_TIMEOUT_S}s: {e}") from e
    except requests.RequestException as e:
        raise OcrUnavailable(f"Could not reach the OCR service: {e}") from e

    if r.status_code == 402:
        raise OcrQuotaExceeded()
    if r.status_code >= 400:
        raise OcrError(f"OCR API error ({r.status_code}): {_error_detail(r)}", status_code=r.status_code)

    data = r.json()
    choices = data.get("choices") or [{}]
    return ((choices[0].get("message") or {}).get("content") or "").strip()


def extract_prescription_text(
    image_bytes: bytes,
    content_type: str = "image/jpeg",
    api_key: Optional[str] = None,
    provider: Optional[str] = None,
) -> str:
    if not image_bytes:
        raise OcrInputError("Please select an image first.")

    provider = (provider or OCR_PROVIDER).lower()
    data, mime = prepare_image(image_bytes, content_type)
    image_url = to_data_url(data, mime)

    if provider == "hf":
        from rx_reminder.services.hf_client import hf_vision_text

        text = hf_vision_text(image_url=image_url, prompt=OCR_PROMPT)
    else:
        # read key at runtime (prevents stale cached value)
        key = (api_key or os.getenv("TOGETHER_API_KEY", "")).strip()
        if not key:
            raise OcrInputError("Missing Together API key. Set TOGETHER_API_KEY in config.env.")
        text = together_chat_text(image_url, key)

    if not text:
        raise OcrInputError("No text extracted from image.")

    logger.info("Extracted %d chars of prescription text", len(text))
    logger.debug("Extracted text: %s", text)
    return text
