"""
Main CLI interface for the Chant Reminder.

This module provides the Typer-based command-line interface with commands for:
- Recording a mantra (live microphone or audio file)
- Listening sessions with soft reminders on silence or a wrong chant
- Inspecting match decisions and replaying scripted sessions
- Managing saved preferences
"""

import logging
import os
import sys
from typing import Dict, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .core.canonical import canonicalize
from .core.config import (
    LANGUAGE_KEY,
    LANGUAGE_LOCALES,
    MANTRA_KEY,
    SILENCE_KEY,
    ConfigError,
    clamp_silence_seconds,
    config,
    get_project_env_path,
    load_project_env,
    normalize_language,
    save_preference,
    validate_config,
)
from .core.debug_log import SessionDebugLogger, is_debug_enabled
from .core.mantra import build_index
from .core.matching import is_match, is_mismatch_worth_flagging
from .core.progress import format_chant_time, live_panel_text, render_session_status, reporter
from .core.reconnect import ReconnectPolicy
from .core.recording import NoAudioCaptured, RecordingController, prettify_mantra
from .core.reminder import ConsoleReminder, ReminderError, ToneReminder
from .core.replay import ReplayError, ReplaySource, load_script, run_replay
from .core.scheduler import ManualClock, VirtualScheduler
from .core.session import NoMantraRecorded, SessionController
from .core.speech import SpeechError, WhisperSpeechSource, get_audio_info, transcribe_file

app = typer.Typer(
    name="chant-reminder",
    help="Chant Reminder - a soft beep when you stop chanting or drift away from your mantra",
    no_args_is_help=True,
)

console = Console()

TEXTS: Dict[str, Dict[str, str]] = {
    "en": {
        "saved_mantra": "Saved Mantra",
        "recording": "Recording... (Ctrl+C to stop & save)",
        "listening": "Listening... (Ctrl+C to stop)",
        "chant_since": "Chant Time Since Reminder",
        "please_record_first": "Please record a mantra first.",
        "no_audio": "No audio captured. Please record again.",
        "mantra_saved": 'Mantra saved: "{mantra}"',
        "note": "Beep if you stop chanting longer than {seconds} seconds or your speech doesn't include your mantra.",
    },
    "hi": {
        "saved_mantra": "सहेजा गया मंत्र",
        "recording": "रिकॉर्ड हो रहा है... (Ctrl+C रोकें और सेव करें)",
        "listening": "सुन रहा है... (Ctrl+C बंद करें)",
        "chant_since": "पिछली याद से जप समय",
        "please_record_first": "कृपया पहले मंत्र रिकॉर्ड करें।",
        "no_audio": "कोई ऑडियो कैप्चर नहीं हुआ। फिर से रिकॉर्ड करें।",
        "mantra_saved": 'मंत्र सेव हुआ: "{mantra}"',
        "note": "यदि आप {seconds} सेकंड से अधिक रुकते हैं या कुछ और बोलते हैं तो बीप।",
    },
}


def _texts(language: str) -> Dict[str, str]:
    return TEXTS.get(language, TEXTS["en"])


def _fail(message: str, title: str = "Error") -> None:
    console.print(f"[bold red]{title}:[/bold red] {message}")
    sys.exit(1)


def _project_root(ctx: typer.Context) -> str:
    return (ctx.obj or {}).get("project_root", ".")


@app.callback()
def main(
    ctx: typer.Context,
    project_root: str = typer.Option(".", "--project-root", help="Directory holding the .chant_reminder preferences"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show informational log messages"),
    debug: bool = typer.Option(False, "--debug", help="Write a JSON-lines session trace and debug logs"),
):
    """
    Record a mantra, then listen while you chant.
    """
    # CLI flag always overrides .env
    if debug:
        os.environ["CR_DEBUG"] = "1"

    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s", handlers=[RichHandler(console=console, show_path=False)], force=True)

    try:
        load_project_env(project_root)
    except Exception as e:
        _fail(f"Failed to load preferences: {e}", "Configuration Error")
    ctx.obj = {"project_root": project_root}


@app.command()
def record(
    ctx: typer.Context,
    audio: Optional[str] = typer.Option(None, "--audio", "-a", help="Transcribe an audio file instead of the microphone"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Recognition language (en|hi)"),
):
    """
    Record your mantra and save it.

    Examples:
        chant-reminder record
        chant-reminder record --language hi
        chant-reminder record --audio mantra.m4a
    """
    project_root = _project_root(ctx)
    lang = "en"
    try:
        lang = normalize_language(language or config.language)
        t = _texts(lang)
        locale = LANGUAGE_LOCALES[lang]

        if audio:
            recorder = RecordingController(locale=locale)
            info = get_audio_info(audio)
            console.print(f"[dim]Audio: {escape(info['name'])} ({info['size_mb']} MB, {info['extension'] or 'no extension'})[/dim]")
            with reporter.initialize(console, "Transcribing audio file…"):
                fragment = transcribe_file(audio, locale)
                recorder.start()
                if fragment is not None:
                    recorder.on_fragment(fragment)
                reporter.complete_step()
            phrase = recorder.stop(commit=True)
        else:
            validate_config()
            recorder = RecordingController(source=WhisperSpeechSource(), locale=locale, reconnect=ReconnectPolicy(max_attempts=config.max_restarts))
            with reporter.initialize(console, f"🎤 {t['recording']}"):
                recorder.start()
                try:
                    while recorder.error is None:
                        if recorder.poll(0.1):
                            reporter.update(f"🎤 {t['recording']} [dim]{escape(recorder.preview)}[/dim]")
                except KeyboardInterrupt:
                    pass
            if recorder.error is not None:
                console.print(f"[yellow]{recorder.error}[/yellow]")
            phrase = recorder.stop(commit=True)

        save_preference(MANTRA_KEY, phrase, project_root)
        console.print(f"[bold green]{escape(t['mantra_saved'].format(mantra=phrase))}[/bold green]")

    except NoAudioCaptured:
        _fail(_texts(lang)["no_audio"])
    except ConfigError as e:
        _fail(str(e), "Configuration Error")
    except (SpeechError, FileNotFoundError) as e:
        _fail(str(e))


@app.command()
def listen(
    ctx: typer.Context,
    silence: Optional[int] = typer.Option(None, "--silence", "-s", min=1, max=10, clamp=True, help="Silence gap in seconds before a reminder (1-10)"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Recognition language (en|hi)"),
):
    """
    Start listening and remind on silence or a wrong chant.

    Examples:
        chant-reminder listen
        chant-reminder listen --silence 5 --language hi
    """
    project_root = _project_root(ctx)
    try:
        lang = normalize_language(language or config.language)
        t = _texts(lang)
        seconds = clamp_silence_seconds(silence) if silence is not None else config.silence_seconds

        mantra = config.mantra
        index = build_index(mantra)
        if index.is_empty:
            raise NoMantraRecorded(t["please_record_first"])
        validate_config()

        emitter = ToneReminder()
        emitter.open()
        controller = SessionController(
            index,
            emitter,
            source=WhisperSpeechSource(),
            silence_threshold_ms=seconds * 1000,
            locale=LANGUAGE_LOCALES[lang],
            reconnect=ReconnectPolicy(max_attempts=config.max_restarts),
            debug_logger=SessionDebugLogger(project_root) if is_debug_enabled() else None,
        )

        console.print(f"{t['saved_mantra']}: [bold]{escape(mantra)}[/bold]")
        console.print(f"[dim]{t['note'].format(seconds=seconds)}[/dim]")

        with reporter.initialize(console, t["listening"]):
            controller.start()
            try:
                controller.run(on_update=lambda state: reporter.update(render_session_status(state, t["chant_since"])))
            except KeyboardInterrupt:
                pass
            finally:
                reminders = controller.state.reminder_count
                controller.stop()
                emitter.close()

        console.print(f"[bold green]Session ended.[/bold green] Reminders: {reminders}")

    except NoMantraRecorded as e:
        _fail(str(e))
    except ConfigError as e:
        _fail(str(e), "Configuration Error")
    except (SpeechError, ReminderError) as e:
        _fail(str(e))


@app.command()
def mantra(
    ctx: typer.Context,
    set_text: Optional[str] = typer.Option(None, "--set", help="Save this phrase as the mantra"),
    clear: bool = typer.Option(False, "--clear", help="Forget the saved mantra"),
):
    """
    Show, set or clear the saved mantra.

    Examples:
        chant-reminder mantra
        chant-reminder mantra --set "sita ram"
        chant-reminder mantra --clear
    """
    project_root = _project_root(ctx)
    if set_text is not None and clear:
        _fail("Cannot specify both --set and --clear")

    if set_text is not None:
        phrase = prettify_mantra(set_text)
        if not phrase:
            _fail("Mantra cannot be empty")
        save_preference(MANTRA_KEY, phrase, project_root)
        console.print(f"[bold green]{escape(TEXTS['en']['mantra_saved'].format(mantra=phrase))}[/bold green]")
        return

    if clear:
        save_preference(MANTRA_KEY, "", project_root)
        console.print("[yellow]Saved mantra cleared[/yellow]")
        return

    index = build_index(config.mantra)
    if index.is_empty:
        console.print(f"[yellow]{TEXTS['en']['please_record_first']}[/yellow]")
        return

    table = Table(title="Saved Mantra")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Phrase", escape(index.raw_phrase))
    table.add_row("Tokens", escape(", ".join(index.tokens)))
    table.add_row("Canonical", escape(index.canonical_phrase))
    table.add_row("Candidates", escape(", ".join(sorted(index.candidate_set))))
    console.print(table)


@app.command()
def settings(
    ctx: typer.Context,
    silence: Optional[int] = typer.Option(None, "--silence", "-s", help="Silence gap in seconds (clamped to 1-10)"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Recognition language (en|hi)"),
):
    """
    Show or change the saved preferences.

    Examples:
        chant-reminder settings
        chant-reminder settings --silence 5 --language hi
    """
    project_root = _project_root(ctx)
    try:
        if silence is not None:
            save_preference(SILENCE_KEY, str(clamp_silence_seconds(silence)), project_root)
        if language is not None:
            save_preference(LANGUAGE_KEY, normalize_language(language), project_root)

        table = Table(title="Preferences")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Silence gap", f"{config.silence_seconds}s")
        table.add_row("Language", f"{config.language} ({config.locale})")
        table.add_row("Mantra", escape(config.mantra) or "None")
        table.add_row("Preferences file", str(get_project_env_path(project_root)))
        console.print(table)
    except ConfigError as e:
        _fail(str(e), "Configuration Error")


@app.command()
def match(
    text: str = typer.Argument(..., help="Recognized speech to test"),
    confidence: float = typer.Option(1.0, "--confidence", "-c", min=0.0, max=1.0, help="Recognizer confidence of the fragment"),
    mantra_text: Optional[str] = typer.Option(None, "--mantra", "-m", help="Mantra to test against (default: saved mantra)"),
):
    """
    Show how a final speech fragment would be judged.

    Examples:
        chant-reminder match "ram ram"
        chant-reminder match "radha" --mantra "sita ram" --confidence 0.8
    """
    index = build_index(mantra_text if mantra_text is not None else config.mantra)
    if index.is_empty:
        _fail(TEXTS["en"]["please_record_first"])

    matched = is_match(text, index)
    flagged = not matched and is_mismatch_worth_flagging(text, confidence, index)

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Mantra", escape(index.raw_phrase))
    table.add_row("Fragment", escape(text))
    table.add_row("Canonical", escape(canonicalize(text.lower())))
    table.add_row("Confidence", f"{confidence:.2f}")
    console.print(table)

    if matched:
        console.print("[bold green]On chant[/bold green]")
    elif flagged:
        console.print("[bold red]Off chant: reminder[/bold red]")
    else:
        console.print("[yellow]Ignored as noise[/yellow]")


@app.command()
def simulate(
    ctx: typer.Context,
    script: str = typer.Argument(..., help="Replay script: '<ms> <final|interim> <confidence> <text>' per line"),
    mantra_text: Optional[str] = typer.Option(None, "--mantra", "-m", help="Mantra to chant (default: saved mantra)"),
    silence: Optional[int] = typer.Option(None, "--silence", "-s", min=1, max=10, clamp=True, help="Silence gap in seconds (1-10)"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", min=0.0, help="Seconds to simulate (default: last event plus one silence gap)"),
):
    """
    Replay a scripted session in virtual time and print the reminders.

    Examples:
        chant-reminder simulate session.txt --mantra "om namah shivaya"
        chant-reminder simulate session.txt --silence 5 --duration 30
    """
    project_root = _project_root(ctx)
    try:
        events = load_script(script)
        index = build_index(mantra_text if mantra_text is not None else config.mantra)
        seconds = clamp_silence_seconds(silence) if silence is not None else config.silence_seconds
        silence_ms = seconds * 1000
        duration_ms = duration * 1000 if duration is not None else max((e.at_ms for e in events), default=0.0) + silence_ms

        clock = ManualClock()
        scheduler = VirtualScheduler(clock)
        source = ReplaySource()
        emitter = ConsoleReminder(console, clock)
        controller = SessionController(
            index,
            emitter,
            source=source,
            scheduler=scheduler,
            clock=clock,
            silence_threshold_ms=silence_ms,
            reconnect=ReconnectPolicy(max_attempts=config.max_restarts),
            debug_logger=SessionDebugLogger(project_root) if is_debug_enabled() else None,
        )

        console.print(f"[dim]Simulating {duration_ms / 1000:.2f}s with {len(events)} events, silence gap {seconds}s[/dim]")
        run_replay(controller, scheduler, source, events, duration_ms)
        state = controller.state

        summary = Table(title="Simulation Summary")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", style="white")
        summary.add_row("Reminders", str(len(emitter.emitted_at)))
        summary.add_row("Reminder times", ", ".join(f"{at / 1000:.2f}s" for at in emitter.emitted_at if at is not None) or "-")
        summary.add_row("Chant time since reminder", format_chant_time(state.chant_elapsed_sec))
        summary.add_row("Live chant", escape(live_panel_text(state)) or "-")
        console.print(summary)

        if controller.error is not None:
            console.print(f"[yellow]Session stopped early: {controller.error}[/yellow]")
        controller.stop()

    except NoMantraRecorded as e:
        _fail(str(e))
    except (ReplayError, FileNotFoundError) as e:
        _fail(str(e))
    except ConfigError as e:
        _fail(str(e), "Configuration Error")


if __name__ == "__main__":
    app()
