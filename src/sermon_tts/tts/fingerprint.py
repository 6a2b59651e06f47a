"""
Cache keys for synthesized segments.

    sha256( segment_text + "|" + json(voice, sort_keys=True) )

Text is hashed byte-for-byte as UTF-8 with no normalization, so any change
in wording or whitespace produces a new key.
"""
from __future__ import annotations

import hashlib
import json

from sermon_tts.tts.voices import VoiceConfig


def canonical_voice(voice: VoiceConfig) -> str:
    return json.dumps(voice.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(segment_text: str, voice: VoiceConfig) -> str:
    """64-char lowercase hex digest identifying (text, voice)."""
    h = hashlib.sha256()
    h.update(segment_text.encode("utf-8"))
    h.update(b"|")
    h.update(canonical_voice(voice).encode("utf-8"))
    return h.hexdigest()
