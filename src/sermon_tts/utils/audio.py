"""
Audio payload helpers.

Merged artifacts are built by concatenating independently encoded MP3
segments. MP3 is a stream of self-contained frames, so common players
handle the result; it is not a re-encode, and frame-level gaps or encoder
delay at segment joins are not corrected.

A leading ID3v2 tag on any segment but the first is dropped so that
metadata blocks do not appear mid-stream.
"""
from __future__ import annotations

from typing import Dict, Sequence, Tuple

from sermon_tts.core.logging import get_logger, verbose
from sermon_tts.utils.timeit import timeit

_LOG = get_logger("sermon-tts.audio")

MP3_CONTENT_TYPE = "audio/mpeg"

_ID3_HEADER_LEN = 10


def id3v2_length(data: bytes) -> int:
    """Size in bytes of a leading ID3v2 tag (header + body + footer), 0 if none."""
    if len(data) < _ID3_HEADER_LEN or data[:3] != b"ID3":
        return 0
    size_bytes = data[6:10]
    if any(b & 0x80 for b in size_bytes):
        return 0
    # Syncsafe integer: 4 x 7 bits.
    size = 0
    for b in size_bytes:
        size = (size << 7) | b
    footer = 10 if data[5] & 0x10 else 0
    return min(len(data), _ID3_HEADER_LEN + size + footer)


def concat_audio(parts: Sequence[bytes]) -> Tuple[bytes, Dict[str, float]]:
    """
    Join encoded segments in the given order.

    Returns:
        (audio_bytes, timings) with timings["merge"] in seconds.
    """
    with timeit("merge") as t:
        out = bytearray()
        for i, part in enumerate(parts):
            start = id3v2_length(part) if i > 0 else 0
            out += part[start:]
        audio = bytes(out)

    verbose(_LOG, "merged", parts=len(parts), bytes=len(audio), seconds=round(t.timing.seconds, 4))
    return audio, {"merge": t.timing.seconds}
