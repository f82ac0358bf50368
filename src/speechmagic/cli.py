"""
Command-Line Interface for speechmagic.

This module runs the generation pipeline without the HTTP server. It
shares the GenerationService with the API, so a CLI generation is
rate limited, stored and recorded exactly like an API one.

Usage Examples:
    # Generate speech for an owner
    speechmagic --text "Hello world" --owner alice

    # Positional text, copy the MP3 somewhere
    speechmagic "Hello world" --owner alice --out hello.mp3

    # Dry-run mode (validates, builds filename and duration, no provider call)
    speechmagic --text "Test" --dry-run --json

    # Voice and speed overrides
    speechmagic --text "Test" --voice onyx --speed 1.5

    # Voice catalogue
    speechmagic --voices

    # An owner's history, newest first
    speechmagic --history alice

    # Remove artifacts older than one day
    speechmagic --cleanup 86400

Environment Variables:
    SPEECHMAGIC_SETTINGS: Settings file (default config/settings.yaml)
    OPENAI_API_KEY: Speech provider key
    SPEECHMAGIC_STORAGE_DIR: Artifact directory override
    SPEECHMAGIC_DATABASE_URL: Ledger URL override
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from speechmagic.core.config import ServiceConfig, Settings, load_settings
from speechmagic.core.logging import configure_logging, get_logger, info, set_request_id
from speechmagic.services.errors import SpeechMagicError
from speechmagic.services.validators import validate_text
from speechmagic.tts.provider import VOICES, estimate_duration, resolve_speed, resolve_voice
from speechmagic.utils.text import generate_filename

CLI_OWNER = "cli"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        argv: Optional list of arguments (defaults to sys.argv).

    Returns:
        Parsed argument namespace with all CLI options.
    """
    parser = argparse.ArgumentParser(description="speechmagic CLI (serverless generation)")

    # Input options
    parser.add_argument("text_pos", nargs="?", help="Text to speak (positional)")
    parser.add_argument("--text", help="Text to speak")
    parser.add_argument("--voice", help="Voice id (alloy, echo, fable, onyx, nova, shimmer)")
    parser.add_argument("--speed", type=float, help="Speed between 0.25 and 4.0")
    parser.add_argument("--owner", default=CLI_OWNER, help="Owner id to record the generation under")

    # Output options
    parser.add_argument("--out", help="Copy the generated MP3 to this path")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Validate and summarize without calling the provider")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    # Maintenance
    parser.add_argument("--voices", action="store_true", help="List available voices")
    parser.add_argument("--history", metavar="OWNER", help="List an owner's generations")
    parser.add_argument("--cleanup", metavar="SECONDS", type=int,
                        help="Delete artifacts older than SECONDS")

    return parser.parse_args(argv)


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False, default=str))
    else:
        print(payload)


def _dry_run_summary(text: str, voice: Optional[str], speed: Optional[float],
                     owner: str, config: ServiceConfig) -> Dict[str, Any]:
    """
    Summarize what a generation would do, without side effects.

    Returns:
        Validation result plus, for valid text, the filename, resolved
        voice/speed and duration estimate.
    """
    validation = validate_text(text, config.text.max_chars)
    summary: Dict[str, Any] = {
        "valid": validation.is_valid,
        "errors": validation.errors,
        "character_count": validation.character_count,
        "word_count": validation.word_count,
    }
    if not validation.is_valid:
        return summary

    voice = resolve_voice(voice, config.provider.default_voice)
    speed = resolve_speed(speed, config.text.speed_min, config.text.speed_max)
    summary.update({
        "filename": generate_filename(text, owner) + config.storage.extension,
        "voice": voice,
        "speed": speed,
        "duration": estimate_duration(text, speed),
    })
    return summary


def _history(service, owner: str) -> Dict[str, Any]:
    page = asyncio.run(service.list_generations(owner))
    return {
        "ok": True,
        "owner": owner,
        "total": page.total,
        "items": [
            {
                "id": r.id,
                "text_preview": r.text_preview,
                "voice": r.voice_type,
                "speed": r.speed,
                "filename": r.filename,
                "duration": r.duration_seconds,
                "created_at": r.created_at,
            }
            for r in page.records
        ],
    }


def _build_service(settings: Settings):
    from speechmagic.services.generation_service import GenerationService
    return GenerationService(settings)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Orchestrates the CLI workflow:
        1. Parse arguments, configure logging, load settings
        2. Handle catalogue / maintenance commands (--voices, --history, --cleanup)
        3. Handle dry-run mode (if requested)
        4. Run the generation pipeline and print the outcome

    Args:
        argv: Optional list of command-line arguments.

    Returns:
        Exit code (0 for success, 1 for invalid text or generation errors).
    """
    args = _parse_args(argv)

    if args.voices:
        _emit({"ok": True, "voices": [
            {"id": v.id, "name": v.name, "description": v.description} for v in VOICES
        ]}, args.json)
        return 0

    configure_logging()
    log = get_logger("speechmagic.cli")
    set_request_id(str(uuid4())[:12])

    settings = load_settings(os.getenv("SPEECHMAGIC_SETTINGS", "config/settings.yaml"), required=False)
    config = settings.get_service_config()

    if args.history:
        try:
            _emit(_history(_build_service(settings), args.history), args.json)
        except SpeechMagicError as e:
            _emit(e.to_dict(), args.json)
            return 1
        return 0

    if args.cleanup is not None:
        result = _build_service(settings).cleanup_artifacts(args.cleanup)
        _emit({"ok": True, **result}, args.json)
        return 0

    text = args.text or args.text_pos
    if not text:
        raise SystemExit("Provide --text or a positional text.")

    # Dry-run: validation and naming only, no provider, store or ledger
    if args.dry_run:
        summary = _dry_run_summary(text, args.voice, args.speed, args.owner, config)
        payload = {"ok": summary["valid"], "dry_run": True, "item": summary}
        if not args.json:
            info(log, "dry_run", chars=summary["character_count"], valid=summary["valid"])
        _emit(payload, args.json)
        if not summary["valid"]:
            return 1
        print("DRY_RUN_OK")
        return 0

    service = _build_service(settings)
    info(log, "generate_start", chars=len(text), owner=args.owner)
    try:
        outcome = asyncio.run(service.generate(args.owner, text, args.voice, args.speed))
    except SpeechMagicError as e:
        _emit(e.to_dict(), args.json)
        return 1

    result: Dict[str, Any] = {
        "ok": True,
        "generation_id": outcome.generation_id,
        "filename": outcome.filename,
        "audio_url": outcome.audio_url,
        "bytes": outcome.file_size,
        "duration": outcome.duration,
        "voice": outcome.voice,
        "speed": outcome.speed,
    }
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(service.store.base_dir / outcome.filename, out_path)
        result["out"] = str(out_path)

    _emit(result, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
