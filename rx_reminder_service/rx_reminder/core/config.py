import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[2]  # rx_reminder_service/

# real environment variables win over config.env
load_dotenv(dotenv_path=BASE_DIR / "config.env", override=False)

DATA_DIR = Path(os.getenv("RX_DATA_DIR", str(BASE_DIR / "data")))

# OCR (vision-language model)
OCR_PROVIDER = os.getenv("OCR_PROVIDER", "together").strip().lower()
OCR_BASE_URL = os.getenv("OCR_BASE_URL", "https://api.together.xyz/v1")
OCR_MODEL = os.getenv("OCR_MODEL", "meta-llama/Llama-Vision-Free")
OCR_TIMEOUT_S = int(os.getenv("OCR_TIMEOUT_S", "60"))
OCR_MAX_TOKENS = int(os.getenv("OCR_MAX_TOKENS", "1024"))

# images above this size get downscaled before upload
OCR_COMPRESS_ABOVE_BYTES = int(os.getenv("OCR_COMPRESS_ABOVE_BYTES", str(1024 * 1024)))
OCR_MAX_DIMENSION = int(os.getenv("OCR_MAX_DIMENSION", "1200"))
OCR_JPEG_QUALITY = int(os.getenv("OCR_JPEG_QUALITY", "80"))

# Scheduler
SCHEDULER_POLL_S = min(60, max(1, int(os.getenv("SCHEDULER_POLL_S", "60"))))

# Voice reminders
TTS_ENABLED = os.getenv("TTS_ENABLED", "true").lower() == "true"
TTS_BASE_URL = os.getenv("TTS_BASE_URL", "https://api.elevenlabs.io/v1")
TTS_VOICE_ID = os.getenv("TTS_VOICE_ID", "EXAVITQu4vr4xnSDxMaL")
TTS_MODEL_ID = os.getenv("TTS_MODEL_ID", "eleven_monolingual_v1")
TTS_TIMEOUT_S = int(os.getenv("TTS_TIMEOUT_S", "20"))
VOICE_AUDIO_DIR = Path(os.getenv("VOICE_AUDIO_DIR", str(DATA_DIR / "voice")))

# Parser defaults
DEFAULT_DURATION_DAYS = int(os.getenv("DEFAULT_DURATION_DAYS", "7"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
