import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

import pyttsx3
import requests

from rx_reminder.core.config import (
    TTS_BASE_URL,
    TTS_MODEL_ID,
    TTS_TIMEOUT_S,
    TTS_VOICE_ID,
    VOICE_AUDIO_DIR,
)
from rx_reminder.schemas.models import Reminder, SpeechResult

logger = logging.getLogger(__name__)


class VoiceError(RuntimeError):
    pass


def reminder_voice_text(medicine_name: str, dosage: str) -> str:
    return f"It's time to take your medicine. {medicine_name}, {dosage}."


class VoiceService:
    """
    Speaks reminders: remote text-to-speech first, the local speech engine if
    that fails. Never raises.
    """

    def __init__(
        self,
        voice_id: str = TTS_VOICE_ID,
        audio_dir: Path = VOICE_AUDIO_DIR,
        engine_factory: Callable[[], Any] = pyttsx3.init,
    ):
        self.voice_id = voice_id
        self.audio_dir = Path(audio_dir)
        self._engine_factory = engine_factory

    def synthesize_remote(self, text: str) -> bytes:
        if not text:
            raise VoiceError("Text is required for voice reminder")
        api_key = os.getenv("ELEVENLABS_API_KEY", "").strip()
        if not api_key:
            raise VoiceError("ELEVENLABS_API_KEY is not set.")

        r = requests.post(
            f"{TTS_BASE_URL}/text-to-speech/{self.voice_id}",
            headers={"xi-api-key": api_key, "Content-Type": "application/json"},
            json={
                "text": text,
                "model_id": TTS_MODEL_ID,
                "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
            },
            timeout=TTS_TIMEOUT_S,
        )
        if r.status_code >= 400:
            raise VoiceError(f"TTS {r.status_code}: {r.text[:200]}")
        return r.content

    def speak_on_device(self, text: str) -> bool:
        try:
            engine = self._engine_factory()
            rate = engine.getProperty("rate")
            engine.setProperty("rate", int(rate * 0.9))  # slightly slower than normal
            engine.say(text)
            engine.runAndWait()
            return True
        except Exception as e:
            # no speech driver installed, audio device busy, ...
            logger.warning("On-device speech failed: %s", e)
            return False

    def audio_path_for(self, reminder_id: str) -> Path:
        return self.audio_dir / f"{reminder_id}.mp3"

    def announce(self, reminder: Reminder) -> SpeechResult:
        text = reminder_voice_text(reminder.medicine_name, reminder.dosage)
        try:
            audio = self.synthesize_remote(text)
            path = self.audio_path_for(reminder.id)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(audio)
            return SpeechResult(channel="remote", text=text, audio_path=str(path))
        except (VoiceError, requests.RequestException, OSError) as e:
            logger.warning("Remote speech failed for reminder %s, using device voice: %s", reminder.id, e)

        if self.speak_on_device(text):
            return SpeechResult(channel="device", text=text)
        return SpeechResult(channel="none", text=text)


_voice: Optional[VoiceService] = None


def get_voice() -> VoiceService:
    global _voice
    if _voice is None:
        _voice = VoiceService()
    return _voice
