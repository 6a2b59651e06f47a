"""
Language tag to synthesis voice resolution.

Only the primary subtag matters: "en", "en-US" and "EN_gb" all resolve to
the same English voice. Unknown or empty tags fall back to English.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class VoiceConfig:
    language_code: str
    voice_name: str

    def to_dict(self) -> Dict[str, str]:
        """Wire form, as stored in cache entries and fingerprinted."""
        return {"languageCode": self.language_code, "voiceName": self.voice_name}


VOICES: Dict[str, VoiceConfig] = {
    "en": VoiceConfig("en-US", "en-US-Neural2-D"),
    "es": VoiceConfig("es-ES", "es-ES-Neural2-B"),
    "fr": VoiceConfig("fr-FR", "fr-FR-Neural2-B"),
    "de": VoiceConfig("de-DE", "de-DE-Neural2-B"),
    "it": VoiceConfig("it-IT", "it-IT-Neural2-C"),
    "pt": VoiceConfig("pt-BR", "pt-BR-Neural2-B"),
    "zh": VoiceConfig("cmn-CN", "cmn-CN-Wavenet-B"),
    "ja": VoiceConfig("ja-JP", "ja-JP-Neural2-C"),
    "ko": VoiceConfig("ko-KR", "ko-KR-Neural2-C"),
}


def primary_subtag(language_tag: Optional[str]) -> str:
    if not language_tag:
        return ""
    return language_tag.strip().replace("_", "-").split("-", 1)[0].lower()


def resolve_voice(language_tag: Optional[str], voice_name: Optional[str] = None) -> VoiceConfig:
    """
    Resolve a language tag to a VoiceConfig.

    Args:
        language_tag: BCP-47-ish tag such as "es" or "zh-CN".
        voice_name: Optional explicit voice; the language code still comes
            from the resolved table entry.
    """
    voice = VOICES.get(primary_subtag(language_tag), VOICES[DEFAULT_LANGUAGE])
    if voice_name:
        return VoiceConfig(voice.language_code, voice_name)
    return voice


def is_supported(language_tag: Optional[str]) -> bool:
    return primary_subtag(language_tag) in VOICES
