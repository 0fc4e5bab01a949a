import logging
import os
from typing import Optional

from huggingface_hub import InferenceClient
from huggingface_hub.utils import HfHubHTTPError

from rx_reminder.core.config import OCR_MAX_TOKENS, OCR_MODEL, OCR_TIMEOUT_S
from rx_reminder.services.ocr_client import OcrError, OcrInputError, OcrQuotaExceeded, build_messages

logger = logging.getLogger(__name__)


def hf_vision_text(
    *,
    image_url: str,
    prompt: str,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    timeout_s: Optional[int] = None,
) -> str:
    # read token/provider at runtime (prevents stale cached value)
    token = os.getenv("HF_TOKEN", "").strip()
    if not token:
        raise OcrInputError("HF_TOKEN is missing. Set it in config.env and restart.")
    provider = os.getenv("HF_PROVIDER", "auto").strip() or "auto"

    client = InferenceClient(
        provider=provider,
        api_key=token,
        timeout=float(timeout_s or OCR_TIMEOUT_S),
    )

    try:
        out = client.chat_completion(
            model=model or os.getenv("HF_MODEL_OCR", OCR_MODEL),
            messages=build_messages(image_url, prompt),
            max_tokens=max_tokens if max_tokens is not None else OCR_MAX_TOKENS,
        )
    except HfHubHTTPError as e:
        status = getattr(e.response, "status_code", None)
        if status == 402:
            raise OcrQuotaExceeded() from e
        raise OcrError(f"HF {status}: {e}", status_code=status) from e

    content = out.choices[0].message.content or ""
    return content.strip()
