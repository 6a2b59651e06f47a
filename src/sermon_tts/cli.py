"""
Command-line interface for sermon-tts.

Runs the generation pipeline without the HTTP server.

Usage Examples:
    # Dry run: show segments and cache keys for a text
    sermon-tts chunk --file sermon.txt --language es --json

    # Generate (or reuse) the artifact for a stored sermon
    sermon-tts generate sermon42 --language en

    # Check whether an artifact exists
    sermon-tts status sermon42 --language en

    # Delete synthesis cache entries older than 7 days
    sermon-tts sweep --ttl-days 7

Environment Variables:
    SERMON_TTS_SETTINGS: Settings file (default config/settings.yaml)
    SERMON_TTS_DOCUMENT_BACKEND: memory | firestore
    SERMON_TTS_BLOB_BACKEND: memory | local | gcs
    SERMON_TTS_BUCKET: Cloud Storage bucket for the gcs backend
"""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sermon_tts.core.config import Settings, load_settings
from sermon_tts.core.errors import GenerationError
from sermon_tts.core.logging import configure_logging, get_logger, info, set_request_id
from sermon_tts.tts.chunker import chunk_text
from sermon_tts.tts.fingerprint import fingerprint
from sermon_tts.tts.voices import resolve_voice


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sermon-tts", description="sermon-tts CLI")
    parser.add_argument("--settings", help="Settings file (default: $SERMON_TTS_SETTINGS or config/settings.yaml)")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--json", action="store_true", help="Print JSON output")

    sub = parser.add_subparsers(dest="command", required=True)

    chunk = sub.add_parser("chunk", parents=[common], help="Split text into segments without synthesizing")
    chunk.add_argument("--text", help="Text to chunk")
    chunk.add_argument("--file", help="UTF-8 text file to chunk")
    chunk.add_argument("--max-chunk-size", type=int, help="Segment budget in characters")
    chunk.add_argument("--language", help="Language tag used for the cache keys")

    generate = sub.add_parser("generate", parents=[common], help="Generate the audio artifact for a document")
    generate.add_argument("document_id")
    generate.add_argument("--language", help="Language tag (default: synthesis.default_language)")
    generate.add_argument("--voice", help="Voice name override")
    generate.add_argument("--user", help="User id for the usage record")

    status = sub.add_parser("status", parents=[common], help="Show whether a document has an artifact")
    status.add_argument("document_id")
    status.add_argument("--language", help="Language tag (default: synthesis.default_language)")

    sweep = sub.add_parser("sweep", parents=[common], help="Delete stale synthesis cache entries")
    sweep.add_argument("--ttl-days", type=float, help="Age limit in days (default: cache.ttl_seconds)")

    return parser.parse_args(argv)


def _load_text(args: argparse.Namespace) -> str:
    if args.file:
        if args.text:
            raise SystemExit("Use --file or --text, not both.")
        return Path(args.file).read_text(encoding="utf-8")
    if not args.text:
        raise SystemExit("Provide --text or --file.")
    return args.text


def _chunk_summary(text: str, language: str, max_chunk_size: int) -> Dict[str, Any]:
    """Segments and cache keys that a generation run would use for ``text``."""
    voice = resolve_voice(language)
    cr = chunk_text(text, max_chunk_size)
    return {
        "text_len": len(text),
        "max_chunk_size": max_chunk_size,
        "language_code": voice.language_code,
        "voice_name": voice.voice_name,
        "chunks": len(cr.segments),
        "segments": [
            {
                "index": s.index,
                "chars": len(s),
                "start": s.start,
                "end": s.end,
                "key": fingerprint(s.text, voice),
            }
            for s in cr.segments
        ],
    }


async def _run_generate(settings: Settings, args: argparse.Namespace) -> Dict[str, Any]:
    from sermon_tts.services.generation import GenerationOrchestrator

    orchestrator = GenerationOrchestrator.from_config(settings.get_service_config())
    try:
        result = await orchestrator.generate_audio(
            args.document_id,
            language=args.language,
            voice_name=args.voice,
            user_id=args.user,
        )
    finally:
        await orchestrator.cache.drain()
    return {
        "ok": True,
        "url": result.url,
        "cached": result.cached,
        "chunk_count": result.chunk_count,
        "language_code": result.language_code,
        "voice_name": result.voice_name,
        "cached_chunks": result.cached_chunks,
        "synthesized_chunks": result.synthesized_chunks,
    }


async def _run_status(settings: Settings, args: argparse.Namespace) -> Dict[str, Any]:
    from sermon_tts.services.generation import GenerationOrchestrator

    orchestrator = GenerationOrchestrator.from_config(settings.get_service_config())
    status = await orchestrator.check_audio_status(args.document_id, args.language)
    return {"ok": True, **asdict(status)}


async def _run_sweep(settings: Settings, args: argparse.Namespace) -> Dict[str, Any]:
    from sermon_tts.stores import create_document_store
    from sermon_tts.tts.cache import SynthesisCache

    config = settings.get_service_config()
    cache = SynthesisCache.from_config(create_document_store(config.documents), config.cache)
    ttl_seconds = None if args.ttl_days is None else int(args.ttl_days * 86400)
    deleted = await cache.sweep(ttl_seconds)
    return {"ok": True, "deleted": deleted}


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code: 0 on success, 1 when the operation failed with a
        GenerationError (printed in the API error format).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("sermon-tts.cli")
    set_request_id(str(uuid4())[:12])

    settings = load_settings(args.settings)
    config = settings.get_service_config()

    if args.command == "chunk":
        text = _load_text(args)
        language = args.language or config.synthesis.default_language
        max_chunk_size = args.max_chunk_size or config.chunking.max_chunk_size
        summary = _chunk_summary(text, language, max_chunk_size)
        info(log, "dry_run", chunks=summary["chunks"], language=summary["language_code"])
        _emit({"ok": True, "dry_run": True, **summary}, args.json)
        return 0

    runners = {
        "generate": _run_generate,
        "status": _run_status,
        "sweep": _run_sweep,
    }
    try:
        payload = asyncio.run(runners[args.command](settings, args))
    except GenerationError as e:
        _emit(e.to_dict(), args.json)
        return 1

    _emit(payload, args.json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
