from datetime import datetime, timezone

import pytest
import requests

from rx_reminder.schemas.models import Reminder
from rx_reminder.services import voice as voice_module
from rx_reminder.services.voice import VoiceError, VoiceService, reminder_voice_text

NOW = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _reminder():
    return Reminder(
        id="r-7",
        medicine_name="Crocin",
        dosage="1 tablet",
        frequency=8,
        duration=3,
        next_due=NOW,
        created_at=NOW,
    )


class FakeEngine:
    def __init__(self):
        self.props = {"rate": 200}
        self.said = []
        self.ran = False

    def getProperty(self, name):
        return self.props[name]

    def setProperty(self, name, value):
        self.props[name] = value

    def say(self, text):
        self.said.append(text)

    def runAndWait(self):
        self.ran = True


class FakeResponse:
    def __init__(self, status_code=200, content=b"ID3fake-mp3", text=""):
        self.status_code = status_code
        self.content = content
        self.text = text


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def service(tmp_path, engine):
    return VoiceService(voice_id="voice-1", audio_dir=tmp_path, engine_factory=lambda: engine)


def test_voice_text():
    assert reminder_voice_text("Crocin", "1 tablet") == "It's time to take your medicine. Crocin, 1 tablet."


def test_remote_audio_is_stored_per_reminder(service, engine, monkeypatch, tmp_path):
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return FakeResponse()

    monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")
    monkeypatch.setattr(voice_module.requests, "post", fake_post)

    result = service.announce(_reminder())

    assert result.channel == "remote"
    assert (tmp_path / "r-7.mp3").read_bytes() == b"ID3fake-mp3"
    assert result.audio_path == str(tmp_path / "r-7.mp3")
    url, headers, body = calls[0]
    assert url.endswith("/text-to-speech/voice-1")
    assert headers["xi-api-key"] == "xi-test"
    assert body["text"] == "It's time to take your medicine. Crocin, 1 tablet."
    assert body["voice_settings"] == {"stability": 0.5, "similarity_boost": 0.5}
    assert engine.said == []


def test_missing_key_falls_back_to_device_voice(service, engine, monkeypatch):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)

    result = service.announce(_reminder())

    assert result.channel == "device"
    assert engine.said == ["It's time to take your medicine. Crocin, 1 tablet."]
    assert engine.props["rate"] == 180
    assert engine.ran


def test_remote_error_falls_back_to_device_voice(service, engine, monkeypatch):
    monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")
    monkeypatch.setattr(voice_module.requests, "post", lambda *a, **kw: FakeResponse(status_code=401, text="bad key"))

    assert service.announce(_reminder()).channel == "device"
    assert len(engine.said) == 1


def test_network_error_falls_back_to_device_voice(service, engine, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")
    monkeypatch.setattr(voice_module.requests, "post", boom)

    assert service.announce(_reminder()).channel == "device"


def test_no_speech_at_all_is_reported_not_raised(tmp_path, monkeypatch):
    def no_driver():
        raise RuntimeError("no speech driver")

    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    service = VoiceService(audio_dir=tmp_path, engine_factory=no_driver)

    result = service.announce(_reminder())

    assert result.channel == "none"
    assert result.audio_path is None


def test_synthesize_requires_text(service):
    with pytest.raises(VoiceError):
        service.synthesize_remote("")
