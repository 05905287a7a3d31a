"""
Speech sources backed by OpenAI Whisper.

A speech source delivers recognition messages (fragments and lifecycle
events) to a sink. The live source captures microphone audio with
sounddevice in fixed windows and transcribes every voiced window through
the Whisper API; each window becomes one final fragment. Whisper has no
interim results, so this source never produces interim fragments.
"""

import io
import logging
import math
import threading
import wave
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol

import numpy as np

from .config import ConfigError, config, get_client
from .timing import timer
from .types import Fragment, SourceEvent

logger = logging.getLogger(__name__)

Sink = Callable[[Any], None]

SUPPORTED_EXTENSIONS = {".mp3", ".mp4", ".mpeg", ".mpga", ".m4a", ".wav", ".webm"}
MAX_UPLOAD_BYTES = 25 * 1024 * 1024  # Whisper upload limit
SAMPLE_RATE = 16000
# Segments Whisper itself considers silence are dropped (it hallucinates text on them)
MAX_NO_SPEECH_PROB = 0.6


class SpeechError(Exception):
    """Raised when speech processing fails."""

    pass


class RecognitionUnavailable(SpeechError):
    """Speech capture or transcription is not available in this environment."""

    pass


class RecognitionTransientError(SpeechError):
    """The recognizer failed mid-session; reopening it may recover."""

    pass


class SpeechSource(Protocol):
    """Delivers Fragment and SourceEvent messages to a sink while open."""

    def open(self, sink: Sink, locale: str) -> None: ...

    def close(self) -> None: ...


def locale_language(locale: str) -> str:
    """Map a recognizer locale (hi-IN) to a Whisper language code (hi)."""
    return (locale or "en").split("-")[0].lower()


def fragment_from_response(response: Any) -> Optional[Fragment]:
    """
    Convert a verbose_json Whisper response into a final fragment.

    Confidence is the mean of exp(avg_logprob) over the kept segments; a
    response without segments is assumed certain.

    Returns:
        Fragment, or None when nothing but silence was recognized
    """
    segments = getattr(response, "segments", None) or []
    if segments:
        kept = [s for s in segments if (getattr(s, "no_speech_prob", 0.0) or 0.0) <= MAX_NO_SPEECH_PROB]
        text = " ".join((getattr(s, "text", "") or "").strip() for s in kept).strip()
        logprobs = [getattr(s, "avg_logprob", None) for s in kept]
        logprobs = [lp for lp in logprobs if lp is not None]
        confidence = sum(math.exp(lp) for lp in logprobs) / len(logprobs) if logprobs else 1.0
    else:
        text = getattr(response, "text", None)
        text = (str(response) if text is None else text).strip()
        confidence = 1.0

    if not text:
        return None
    return Fragment(text=text, is_final=True, confidence=max(0.0, min(1.0, confidence)))


def encode_wav(samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Encode mono float samples in [-1, 1] as 16-bit PCM WAV bytes."""
    pcm = (np.clip(samples.reshape(-1), -1.0, 1.0) * 32767).astype("<i2")
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buffer.getvalue()


def rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


class WhisperSpeechSource:
    """
    Live microphone source transcribed window by window with Whisper.

    Audio arrives on the sounddevice callback thread; a worker thread cuts it
    into windows, skips quiet ones and posts one final fragment per voiced
    window. A failed transcription posts an "errored" event and ends the
    worker; the owning controller decides whether to reopen.
    """

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        min_rms: Optional[float] = None,
        sample_rate: int = SAMPLE_RATE,
        client: Any = None,
        model: Optional[str] = None,
    ):
        self.window_seconds = window_seconds if window_seconds is not None else config.window_seconds
        self.min_rms = min_rms if min_rms is not None else config.min_rms
        self.sample_rate = sample_rate
        self.model = model or config.asr_model
        self._client = client
        self._language = "en"
        self._stream: Any = None
        self._worker: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._frames: List[np.ndarray] = []
        self._lock = threading.Lock()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_client()
        return self._client

    def open(self, sink: Sink, locale: str = "en-IN") -> None:
        """
        Start capturing and transcribing.

        Raises:
            RecognitionUnavailable: No audio input or no API configuration
            RecognitionTransientError: The input stream could not be started
        """
        self.close()
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise RecognitionUnavailable(f"Microphone capture is not available: {e}")
        try:
            _ = self.client
        except ConfigError as e:
            raise RecognitionUnavailable(str(e))

        self._language = locale_language(locale)
        self._stop = threading.Event()
        with self._lock:
            self._frames = []
        try:
            self._stream = sd.InputStream(samplerate=self.sample_rate, channels=1, dtype="float32", callback=self._on_audio)
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise RecognitionTransientError(f"Failed to open microphone stream: {e}")

        self._worker = threading.Thread(target=self._run, args=(sink, self._stop), name="chant-whisper", daemon=True)
        self._worker.start()
        logger.debug("Whisper source opened (language=%s, window=%.1fs)", self._language, self.window_seconds)

    def close(self) -> None:
        """Stop capture and wait for the worker; safe to call repeatedly."""
        self._stop.set()
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                logger.debug("Ignoring error while closing input stream: %s", e)
        worker, self._worker = self._worker, None
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=self.window_seconds + 5.0)
        with self._lock:
            self._frames = []

    def _on_audio(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Audio input status: %s", status)
        with self._lock:
            self._frames.append(indata.copy())

    def _take_window(self) -> Optional[np.ndarray]:
        with self._lock:
            frames, self._frames = self._frames, []
        if not frames:
            return None
        return np.concatenate(frames, axis=0).reshape(-1)

    def _run(self, sink: Sink, stop: threading.Event) -> None:
        while not stop.wait(self.window_seconds):
            samples = self._take_window()
            if samples is None or rms(samples) < self.min_rms:
                continue
            try:
                fragment = self.transcribe_samples(samples)
            except Exception as e:
                logger.warning("Whisper transcription failed: %s", e)
                if not stop.is_set():
                    sink(SourceEvent(kind="errored", detail=str(e)))
                return
            if fragment is not None and not stop.is_set():
                sink(fragment)

    @timer
    def transcribe_samples(self, samples: np.ndarray) -> Optional[Fragment]:
        """Transcribe one window of mono float samples."""
        payload = encode_wav(samples, self.sample_rate)
        response = self.client.audio.transcriptions.create(
            model=self.model,
            file=("window.wav", payload),
            response_format="verbose_json",
            language=self._language,
        )
        return fragment_from_response(response)


def validate_audio_format(path: str) -> bool:
    """Check whether the audio file extension is accepted by Whisper."""
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def get_audio_info(path: str) -> dict:
    """
    Get basic information about the audio file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    audio_path = Path(path)
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    stat = audio_path.stat()
    return {
        "path": str(audio_path.absolute()),
        "name": audio_path.name,
        "size_bytes": stat.st_size,
        "size_mb": round(stat.st_size / 1024 / 1024, 2),
        "extension": audio_path.suffix.lower(),
        "supported": validate_audio_format(path),
    }


@timer
def transcribe_file(path: str, locale: str = "en-IN", client: Any = None) -> Optional[Fragment]:
    """
    Transcribe a recorded audio file into a single final fragment.

    Args:
        path: Path to the audio file
        locale: Recognizer locale; its language part is passed to Whisper
        client: OpenAI client; the configured one when None

    Returns:
        Fragment, or None when the file contains no speech

    Raises:
        FileNotFoundError: If audio file doesn't exist
        SpeechError: If the file is unusable or transcription fails
    """
    audio_path = Path(path)
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")
    if not audio_path.is_file():
        raise SpeechError(f"Path is not a file: {path}")
    if not validate_audio_format(path):
        raise SpeechError(f"Unsupported audio format: {audio_path.suffix} (supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))})")

    file_size = audio_path.stat().st_size
    if file_size > MAX_UPLOAD_BYTES:
        raise SpeechError(f"Audio file too large: {file_size / 1024 / 1024:.1f}MB (max: 25MB)")

    if client is None:
        try:
            client = get_client()
        except ConfigError as e:
            raise RecognitionUnavailable(str(e))

    try:
        with open(audio_path, "rb") as audio_file:
            response = client.audio.transcriptions.create(
                model=config.asr_model,
                file=audio_file,
                response_format="verbose_json",
                language=locale_language(locale),
            )
    except Exception as e:
        raise SpeechError(f"Failed to transcribe audio: {str(e)}")

    return fragment_from_response(response)
