"""
Tests for configuration and the command-line interface.

Every test works against a preferences file under tmp_path; no microphone,
speaker or API key is needed.
"""

import os
import sys

import pytest
from dotenv import dotenv_values
from typer.testing import CliRunner

from chant_reminder.core.config import (
    ConfigError,
    clamp_silence_seconds,
    config,
    get_project_env_path,
    load_project_env,
    normalize_language,
    save_preference,
)
from chant_reminder.core.types import Fragment
from chant_reminder.main import app

runner = CliRunner()


def invoke(tmp_path, *args):
    return runner.invoke(app, ["--project-root", str(tmp_path), *args])


class TestConfig:
    """Test preference parsing and persistence."""

    def test_clamp_silence_seconds(self):
        """Test clamping of the silence gap to 1-10 seconds."""
        assert clamp_silence_seconds(0) == 1
        assert clamp_silence_seconds(15) == 10
        assert clamp_silence_seconds(4) == 4

    def test_defaults(self):
        """Test configuration defaults with no preferences saved."""
        assert config.silence_seconds == 3
        assert config.silence_threshold_ms == 3000
        assert config.language == "en"
        assert config.locale == "en-IN"
        assert config.mantra == ""
        assert config.max_restarts == 5

    def test_silence_from_env_is_clamped(self, monkeypatch):
        """Test that an out-of-range silence gap is clamped."""
        monkeypatch.setenv("CHANT_SILENCE_SEC", "25")
        assert config.silence_seconds == 10

    def test_invalid_numbers(self, monkeypatch):
        """Test that malformed numeric settings raise ConfigError."""
        monkeypatch.setenv("CHANT_SILENCE_SEC", "soon")
        with pytest.raises(ConfigError):
            _ = config.silence_seconds
        monkeypatch.setenv("CHANT_WINDOW_SEC", "0")
        with pytest.raises(ConfigError):
            _ = config.window_seconds

    def test_language(self, monkeypatch):
        """Test language normalization and locale lookup."""
        monkeypatch.setenv("CHANT_LANGUAGE", "HI")
        assert config.locale == "hi-IN"
        assert normalize_language(None) == "en"
        with pytest.raises(ConfigError):
            normalize_language("fr")

    def test_project_env_path(self, tmp_path, monkeypatch):
        """Test project env path resolution and CR_ENV_FILE override."""
        assert get_project_env_path(str(tmp_path)) == tmp_path / ".chant_reminder" / ".env"
        explicit = tmp_path / "prefs.env"
        monkeypatch.setenv("CR_ENV_FILE", str(explicit))
        assert get_project_env_path(str(tmp_path)) == explicit

    def test_save_preference(self, tmp_path):
        """Test persisting a preference to the project env file."""
        path = save_preference("CHANT_MANTRA", "sita ram", str(tmp_path))
        assert path == tmp_path / ".chant_reminder" / ".env"
        assert dotenv_values(path)["CHANT_MANTRA"] == "sita ram"
        assert os.environ["CHANT_MANTRA"] == "sita ram"
        assert config.mantra == "sita ram"

    def test_load_project_env(self, tmp_path):
        """Test loading preferences from the project env file."""
        env_dir = tmp_path / ".chant_reminder"
        env_dir.mkdir()
        (env_dir / ".env").write_text('CHANT_LANGUAGE="hi"\n', encoding="utf-8")
        assert load_project_env(str(tmp_path)) == str(env_dir / ".env")
        assert config.language == "hi"

    def test_load_project_env_missing(self, tmp_path):
        """Test loading when no env file exists."""
        assert load_project_env(str(tmp_path)) is None


class TestMatchCommand:
    """Test the match command."""

    def test_on_chant(self, tmp_path):
        """Test a partial chant reported as on chant."""
        result = invoke(tmp_path, "match", "ram ram", "--mantra", "sita ram")
        assert result.exit_code == 0
        assert "On chant" in result.stdout

    def test_off_chant(self, tmp_path):
        """Test an unrelated word reported as a reminder."""
        result = invoke(tmp_path, "match", "radha", "--mantra", "sita ram", "--confidence", "0.8")
        assert result.exit_code == 0
        assert "Off chant: reminder" in result.stdout

    def test_noise(self, tmp_path):
        """Test short low-confidence speech reported as noise."""
        result = invoke(tmp_path, "match", "uh", "--mantra", "sita ram", "-c", "0.2")
        assert result.exit_code == 0
        assert "Ignored as noise" in result.stdout

    def test_without_mantra(self, tmp_path):
        """Test match without any mantra."""
        result = invoke(tmp_path, "match", "ram")
        assert result.exit_code == 1
        assert "Please record a mantra first." in result.stdout


class TestMantraCommand:
    """Test showing, setting and clearing the saved mantra."""

    def test_set_and_show(self, tmp_path):
        """Test setting the mantra and showing its index."""
        result = invoke(tmp_path, "mantra", "--set", "sitaram  sitaram")
        assert result.exit_code == 0
        assert 'Mantra saved: "sita ram sita ram"' in result.stdout
        assert dotenv_values(tmp_path / ".chant_reminder" / ".env")["CHANT_MANTRA"] == "sita ram sita ram"

        result = invoke(tmp_path, "mantra")
        assert result.exit_code == 0
        assert "Saved Mantra" in result.stdout
        assert "sitaram" in result.stdout

    def test_clear(self, tmp_path):
        """Test clearing the saved mantra."""
        invoke(tmp_path, "mantra", "--set", "om")
        result = invoke(tmp_path, "mantra", "--clear")
        assert result.exit_code == 0
        assert config.mantra == ""
        result = invoke(tmp_path, "mantra")
        assert "Please record a mantra first." in result.stdout

    def test_set_and_clear_conflict(self, tmp_path):
        """Test that --set and --clear are mutually exclusive."""
        result = invoke(tmp_path, "mantra", "--set", "om", "--clear")
        assert result.exit_code == 1

    def test_empty_mantra(self, tmp_path):
        """Test rejection of a blank mantra."""
        result = invoke(tmp_path, "mantra", "--set", "   ")
        assert result.exit_code == 1


class TestSettingsCommand:
    """Test the settings command."""

    def test_show_defaults(self, tmp_path):
        """Test showing default preferences."""
        result = invoke(tmp_path, "settings")
        assert result.exit_code == 0
        assert "3s" in result.stdout
        assert "en-IN" in result.stdout

    def test_change_preferences(self, tmp_path):
        """Test saving silence gap and language."""
        result = invoke(tmp_path, "settings", "--silence", "15", "--language", "hi")
        assert result.exit_code == 0
        assert "10s" in result.stdout
        assert "hi-IN" in result.stdout
        values = dotenv_values(tmp_path / ".chant_reminder" / ".env")
        assert values["CHANT_SILENCE_SEC"] == "10"
        assert values["CHANT_LANGUAGE"] == "hi"

    def test_invalid_language(self, tmp_path):
        """Test rejection of an unsupported language."""
        result = invoke(tmp_path, "settings", "--language", "fr")
        assert result.exit_code == 1
        assert "Configuration Error" in result.stdout


class TestListenCommand:
    """Test listen preconditions (no audio is opened)."""

    def test_requires_mantra(self, tmp_path):
        """Test listen without a saved mantra."""
        result = invoke(tmp_path, "listen")
        assert result.exit_code == 1
        assert "Please record a mantra first." in result.stdout

    def test_audio_output_unavailable(self, tmp_path, monkeypatch):
        """Test listen failing early when audio output is missing."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("CHANT_MANTRA", "sita ram")
        monkeypatch.setitem(sys.modules, "sounddevice", None)
        result = invoke(tmp_path, "listen")
        assert result.exit_code == 1
        assert "Audio output is not available" in result.stdout


class TestRecordCommand:
    """Test recording a mantra from an audio file."""

    def test_record_from_audio_file(self, tmp_path, monkeypatch):
        """Test recording a mantra from an audio file."""
        audio = tmp_path / "mantra.wav"
        audio.write_bytes(b"RIFF" + b"\0" * 40)
        monkeypatch.setattr("chant_reminder.main.transcribe_file", lambda path, locale: Fragment(text="Sitaram sitaram"))

        result = invoke(tmp_path, "record", "--audio", str(audio))

        assert result.exit_code == 0
        assert "mantra.wav" in result.stdout
        assert 'Mantra saved: "sita ram sita ram"' in result.stdout
        assert config.mantra == "sita ram sita ram"

    def test_record_missing_audio_file(self, tmp_path):
        """Test recording from a file that does not exist."""
        result = invoke(tmp_path, "record", "--audio", str(tmp_path / "missing.wav"))
        assert result.exit_code == 1
        assert "Audio file not found" in result.stdout

    def test_record_from_silent_audio_file(self, tmp_path, monkeypatch):
        """Test recording from a file with no speech."""
        audio = tmp_path / "silence.wav"
        audio.write_bytes(b"RIFF")
        monkeypatch.setattr("chant_reminder.main.transcribe_file", lambda path, locale: None)

        result = invoke(tmp_path, "record", "--audio", str(audio))

        assert result.exit_code == 1
        assert "No audio captured" in result.stdout


class TestSimulateCommand:
    """Test replaying scripted sessions from the CLI."""

    def test_reminder_after_silence(self, tmp_path):
        """Test the simulated reminder after a full chant and silence."""
        script = tmp_path / "session.txt"
        script.write_text("0 final 0.9 om namah shivaya\n", encoding="utf-8")

        result = invoke(tmp_path, "simulate", str(script), "--mantra", "om namah shivaya", "--duration", "3.2")

        assert result.exit_code == 0
        assert "reminder at 3.00s" in result.stdout
        assert "Simulation Summary" in result.stdout
        assert "om namah shivaya" in result.stdout

    def test_uses_saved_mantra(self, tmp_path):
        """Test simulating against the saved mantra."""
        invoke(tmp_path, "mantra", "--set", "sita ram")
        script = tmp_path / "session.txt"
        script.write_text("0 final 0.9 sita ram\n1000 final 0.8 radha\n", encoding="utf-8")

        result = invoke(tmp_path, "simulate", str(script), "--duration", "1.5")

        assert result.exit_code == 0
        assert "reminder at 1.00s" in result.stdout

    def test_bad_script(self, tmp_path):
        """Test reporting of a malformed script line."""
        script = tmp_path / "session.txt"
        script.write_text("0 final loud om\n", encoding="utf-8")
        result = invoke(tmp_path, "simulate", str(script), "--mantra", "om")
        assert result.exit_code == 1
        assert "Line 1" in result.stdout

    def test_missing_script(self, tmp_path):
        """Test simulating a script that does not exist."""
        result = invoke(tmp_path, "simulate", str(tmp_path / "missing.txt"), "--mantra", "om")
        assert result.exit_code == 1

    def test_missing_mantra(self, tmp_path):
        """Test simulate without any mantra."""
        script = tmp_path / "session.txt"
        script.write_text("0 final 0.9 om\n", encoding="utf-8")
        result = invoke(tmp_path, "simulate", str(script))
        assert result.exit_code == 1
        assert "Please record a mantra first." in result.stdout
