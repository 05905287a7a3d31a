"""
Tests for the Whisper speech adapter and the reminder cue.

No audio device or network is used: transcription goes through a dummy
client and the cue is checked as samples.
"""

import io
import math
import sys
import wave
from types import SimpleNamespace

import numpy as np
import pytest

from chant_reminder.core.reminder import ConsoleReminder, ReminderError, ToneReminder, generate_cue
from chant_reminder.core.scheduler import ManualClock
from chant_reminder.core.speech import (
    SpeechError,
    WhisperSpeechSource,
    encode_wav,
    fragment_from_response,
    get_audio_info,
    locale_language,
    rms,
    transcribe_file,
    validate_audio_format,
)


class DummyTranscriptions:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


class DummyClient:
    def __init__(self, response):
        self.audio = SimpleNamespace(transcriptions=DummyTranscriptions(response))

    @property
    def calls(self):
        return self.audio.transcriptions.calls


def segment(text, avg_logprob=0.0, no_speech_prob=0.0):
    return SimpleNamespace(text=text, avg_logprob=avg_logprob, no_speech_prob=no_speech_prob)


class TestFragmentFromResponse:
    """Test conversion of Whisper responses into fragments."""

    def test_segments_give_confidence(self):
        """Test confidence from segment log probabilities."""
        response = SimpleNamespace(
            text="ignored",
            segments=[segment(" sita ram", math.log(0.8)), segment(" sita ram ", math.log(0.6))],
        )
        fragment = fragment_from_response(response)
        assert fragment.text == "sita ram sita ram"
        assert fragment.is_final
        assert fragment.confidence == pytest.approx(0.7)

    def test_silent_segments_are_dropped(self):
        """Test dropping of no-speech segments."""
        response = SimpleNamespace(text=" Thank you.", segments=[segment(" Thank you.", -0.2, no_speech_prob=0.9)])
        assert fragment_from_response(response) is None

    def test_plain_text_response(self):
        """Test a response without segments."""
        fragment = fragment_from_response(SimpleNamespace(text=" om ", segments=None))
        assert fragment.text == "om"
        assert fragment.confidence == 1.0

    def test_empty_text(self):
        """Test an empty response."""
        assert fragment_from_response(SimpleNamespace(text="", segments=[])) is None


class TestAudioHelpers:
    """Test audio encoding and file checks."""

    def test_encode_wav(self):
        """Test WAV encoding."""
        samples = np.zeros(1600, dtype=np.float32)
        with wave.open(io.BytesIO(encode_wav(samples)), "rb") as wav:
            assert wav.getframerate() == 16000
            assert wav.getnchannels() == 1
            assert wav.getnframes() == 1600

    def test_rms(self):
        """Test the RMS level."""
        assert rms(np.zeros(10)) == 0.0
        assert rms(np.array([])) == 0.0
        assert rms(np.full(10, 0.5)) == pytest.approx(0.5)

    def test_locale_language(self):
        """Test locale to language mapping."""
        assert locale_language("hi-IN") == "hi"
        assert locale_language("en-IN") == "en"

    def test_validate_audio_format(self):
        """Test supported audio extensions."""
        assert validate_audio_format("mantra.m4a")
        assert validate_audio_format("MANTRA.WAV")
        assert not validate_audio_format("mantra.txt")

    def test_get_audio_info(self, tmp_path):
        """Test audio file information."""
        path = tmp_path / "mantra.wav"
        path.write_bytes(b"RIFF")
        info = get_audio_info(str(path))
        assert info["size_bytes"] == 4
        assert info["supported"]
        with pytest.raises(FileNotFoundError):
            get_audio_info(str(tmp_path / "missing.wav"))


class TestTranscribeFile:
    """Test file transcription with a dummy client."""

    def test_transcribes_with_language(self, tmp_path):
        """Test file transcription with a language."""
        path = tmp_path / "mantra.wav"
        path.write_bytes(encode_wav(np.zeros(160)))
        client = DummyClient(SimpleNamespace(text="राम राम", segments=None))

        fragment = transcribe_file(str(path), "hi-IN", client=client)

        assert fragment.text == "राम राम"
        assert client.calls[0]["language"] == "hi"
        assert client.calls[0]["response_format"] == "verbose_json"

    def test_unsupported_format(self, tmp_path):
        """Test rejection of unsupported files."""
        path = tmp_path / "mantra.txt"
        path.write_text("sita ram")
        with pytest.raises(SpeechError):
            transcribe_file(str(path), client=DummyClient(None))

    def test_missing_file(self, tmp_path):
        """Test transcription of a missing file."""
        with pytest.raises(FileNotFoundError):
            transcribe_file(str(tmp_path / "missing.wav"), client=DummyClient(None))

    def test_client_failure(self, tmp_path):
        """Test wrapping of client errors."""
        class FailingTranscriptions:
            def create(self, **kwargs):
                raise RuntimeError("rate limited")

        path = tmp_path / "mantra.wav"
        path.write_bytes(encode_wav(np.zeros(160)))
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=FailingTranscriptions()))
        with pytest.raises(SpeechError, match="rate limited"):
            transcribe_file(str(path), client=client)


class TestWhisperSpeechSource:
    """Test window transcription without opening a microphone."""

    def test_transcribe_samples(self):
        """Test transcription of one audio window."""
        client = DummyClient(SimpleNamespace(text="sita ram", segments=[segment("sita ram", math.log(0.9))]))
        source = WhisperSpeechSource(window_seconds=1.0, min_rms=0.01, client=client, model="whisper-1")

        fragment = source.transcribe_samples(np.full(1600, 0.1, dtype=np.float32))

        assert fragment.text == "sita ram"
        assert fragment.confidence == pytest.approx(0.9)
        name, payload = client.calls[0]["file"]
        assert name == "window.wav"
        assert payload[:4] == b"RIFF"
        assert client.calls[0]["model"] == "whisper-1"

    def test_close_without_open(self):
        """Test closing an unopened source."""
        source = WhisperSpeechSource(window_seconds=1.0, min_rms=0.01, client=DummyClient(None))
        source.close()
        source.close()


class TestReminderCue:
    """Test the reminder tone and the console emitter."""

    def test_cue_shape(self):
        """Test the reminder tone envelope."""
        cue = generate_cue(sample_rate=24000)
        assert cue.shape == (36000,)
        assert cue.dtype == np.float32
        assert float(np.max(np.abs(cue))) <= 0.2 + 1e-6
        assert abs(float(cue[0])) < 1e-6
        assert float(np.max(np.abs(cue[-100:]))) < 0.01

    def test_tone_reminder_without_audio_output(self, monkeypatch):
        """Test the tone reminder without sounddevice."""
        monkeypatch.setitem(sys.modules, "sounddevice", None)
        reminder = ToneReminder()
        with pytest.raises(ReminderError):
            reminder.open()

    def test_console_reminder_records_times(self):
        """Test reminder times recorded by the console emitter."""
        clock = ManualClock(2500)
        reminder = ConsoleReminder(clock=clock)
        reminder.emit()
        assert reminder.emitted_at == [2500]
