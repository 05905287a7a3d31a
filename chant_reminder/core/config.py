"""
Configuration management for the Chant Reminder.

This module handles environment variables, user preferences and the OpenAI
client used for Whisper transcription. Preferences (saved mantra, silence
gap, language) live in a project-scoped .env file under .chant_reminder/ and
are read and written with python-dotenv. No implicit loading occurs at import
time.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv, set_key
from openai import OpenAI


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


DEFAULT_SILENCE_SEC = 3
MIN_SILENCE_SEC = 1
MAX_SILENCE_SEC = 10

# Language toggle -> recognizer locale
LANGUAGE_LOCALES: Dict[str, str] = {"en": "en-IN", "hi": "hi-IN"}
DEFAULT_LANGUAGE = "en"

MANTRA_KEY = "CHANT_MANTRA"
SILENCE_KEY = "CHANT_SILENCE_SEC"
LANGUAGE_KEY = "CHANT_LANGUAGE"


def clamp_silence_seconds(value: int) -> int:
    """Clamp a silence gap to the supported [1, 10] second range."""
    return max(MIN_SILENCE_SEC, min(MAX_SILENCE_SEC, int(value)))


def normalize_language(value: Optional[str]) -> str:
    """
    Validate a language toggle value.

    Raises:
        ConfigError: If the language is not supported
    """
    lang = (value or DEFAULT_LANGUAGE).strip().lower()
    if lang not in LANGUAGE_LOCALES:
        raise ConfigError(f"Unsupported language '{value}'. Use one of: {', '.join(LANGUAGE_LOCALES)}")
    return lang


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")


@lru_cache(maxsize=32)
def load_config(env_path: Optional[str] = None, override: bool = False) -> None:
    """Explicitly load environment variables from the given .env file path."""
    if env_path:
        load_dotenv(dotenv_path=env_path, override=override)


class Config:
    """Configuration settings for the Chant Reminder."""

    @property
    def openai_api_key(self) -> str:
        """Get OpenAI API key from environment."""
        key = os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigError("OPENAI_API_KEY not found in environment. Please set it in your environment or .env file.")
        return key

    @property
    def asr_model(self) -> str:
        """Get the model name for ASR (default: whisper-1)."""
        return os.getenv("ASR_MODEL", "whisper-1")

    @property
    def openai_timeout(self) -> int:
        """Get OpenAI API timeout in seconds (default: 30)."""
        return _int_env("OPENAI_TIMEOUT", 30)

    @property
    def max_retries(self) -> int:
        """Get maximum number of retries for API calls (default: 2)."""
        return _int_env("MAX_RETRIES", 2)

    @property
    def mantra(self) -> str:
        """Saved mantra phrase (empty when none recorded)."""
        return os.getenv(MANTRA_KEY, "").strip()

    @property
    def silence_seconds(self) -> int:
        """Silence gap before a reminder, clamped to [1, 10] (default: 3)."""
        return clamp_silence_seconds(_int_env(SILENCE_KEY, DEFAULT_SILENCE_SEC))

    @property
    def silence_threshold_ms(self) -> int:
        return self.silence_seconds * 1000

    @property
    def language(self) -> str:
        """Language toggle, 'en' or 'hi' (default: en)."""
        return normalize_language(os.getenv(LANGUAGE_KEY, DEFAULT_LANGUAGE))

    @property
    def locale(self) -> str:
        """Recognizer locale for the selected language."""
        return LANGUAGE_LOCALES[self.language]

    @property
    def window_seconds(self) -> float:
        """Length of each microphone window sent to Whisper (default: 2.0)."""
        value = _float_env("CHANT_WINDOW_SEC", 2.0)
        if value <= 0:
            raise ConfigError("CHANT_WINDOW_SEC must be positive")
        return value

    @property
    def min_rms(self) -> float:
        """Windows quieter than this RMS level are not transcribed (default: 0.01)."""
        return _float_env("CHANT_MIN_RMS", 0.01)

    @property
    def max_restarts(self) -> int:
        """Consecutive recognizer restarts before giving up (default: 5)."""
        value = _int_env("CHANT_MAX_RESTARTS", 5)
        if value < 1:
            raise ConfigError("CHANT_MAX_RESTARTS must be at least 1")
        return value


# Global config instance
config = Config()

# --- Project-scoped environment helpers ---

DEFAULT_ENV_FILENAME = os.getenv("CR_ENV_FILENAME", ".env")
ENV_FILE_ENV_VAR = "CR_ENV_FILE"
PROJECT_ROOT_ENV_VAR = "CR_PROJECT_ROOT"
METADATA_DIRNAME = ".chant_reminder"


def detect_project_root(start_dir: Optional[str] = None) -> Optional[Path]:
    """Detect project root by looking for a .chant_reminder directory upwards from start_dir (or CWD)."""
    start = Path(start_dir) if start_dir else Path.cwd()
    for current in [start] + list(start.parents):
        if (current / METADATA_DIRNAME).exists():
            return current
    return None


def get_project_metadata_dir(project_root: Optional[str] = None) -> Path:
    """Return the .chant_reminder directory for a given or detected project root."""
    root = Path(project_root) if project_root else (detect_project_root() or Path.cwd())
    return root / METADATA_DIRNAME


def get_project_env_path(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME) -> Path:
    """
    Compute the path of the preferences file.

    An explicit CR_ENV_FILE wins over the project-scoped location.
    """
    explicit = os.getenv(ENV_FILE_ENV_VAR)
    if explicit:
        return Path(explicit)
    if project_root is None:
        project_root = os.getenv(PROJECT_ROOT_ENV_VAR)
    return get_project_metadata_dir(project_root) / filename


def load_project_env(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME, override: bool = False) -> Optional[str]:
    """
    Load the preferences file, if available.

    Load order (first match wins):
    1) Explicit env file path via CR_ENV_FILE
    2) <project_root>/.chant_reminder/<filename> (default: .env)

    Returns the path loaded, or None if nothing was loaded.
    """
    env_path = get_project_env_path(project_root, filename)
    if env_path.is_file():
        load_config(str(env_path), override=override)
        return str(env_path)
    return None


def save_preference(key: str, value: str, project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME) -> Path:
    """
    Persist a preference to the project env file and the current environment.

    Args:
        key: Environment variable name (e.g. CHANT_MANTRA)
        value: Value to store
        project_root: Project root; detected when None

    Returns:
        Path of the env file written
    """
    env_path = get_project_env_path(project_root, filename)
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.touch(exist_ok=True)
    set_key(str(env_path), key, value, quote_mode="always")
    os.environ[key] = value
    # A later load of the same file must not be served from the lru cache
    load_config.cache_clear()
    return env_path


@lru_cache(maxsize=1)
def get_client() -> OpenAI:
    """
    Get configured OpenAI client with timeout and retry settings.

    If OPENAI_API_KEY is missing, attempts to load the project-scoped env first.

    Raises:
        ConfigError: If API key is not configured after project env lookup
    """
    if not os.getenv("OPENAI_API_KEY"):
        loaded_path = load_project_env()
        if not os.getenv("OPENAI_API_KEY"):
            where = loaded_path or f"{METADATA_DIRNAME}/{DEFAULT_ENV_FILENAME}"
            raise ConfigError(f"OPENAI_API_KEY not found in environment. Looked for project env at {where}. Set it via environment, {ENV_FILE_ENV_VAR}, or place it under {METADATA_DIRNAME}/{DEFAULT_ENV_FILENAME}.")
    try:
        return OpenAI(
            api_key=config.openai_api_key,
            timeout=config.openai_timeout,
            max_retries=config.max_retries,
        )
    except Exception as e:
        raise ConfigError(f"Failed to create OpenAI client: {e}")


def validate_config() -> None:
    """
    Validate that all configuration needed for live recognition is present.

    Raises:
        ConfigError: If required configuration is missing or invalid
    """
    _ = config.language
    _ = config.window_seconds
    _ = config.max_restarts
    _ = get_client()
