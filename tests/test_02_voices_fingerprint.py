"""
Tests for voice resolution and cache fingerprints.

Tests cover:
- Primary subtag resolution and English fallback
- Voice overrides
- Fingerprint determinism and sensitivity
"""
import hashlib

import pytest

from sermon_tts.tts.fingerprint import canonical_voice, fingerprint
from sermon_tts.tts.voices import VOICES, VoiceConfig, is_supported, primary_subtag, resolve_voice


class TestResolveVoice:
    """Tests for resolve_voice()."""

    @pytest.mark.parametrize("tag,code,name", [
        ("en", "en-US", "en-US-Neural2-D"),
        ("en-GB", "en-US", "en-US-Neural2-D"),
        ("es-MX", "es-ES", "es-ES-Neural2-B"),
        ("FR", "fr-FR", "fr-FR-Neural2-B"),
        ("de_AT", "de-DE", "de-DE-Neural2-B"),
        ("it", "it-IT", "it-IT-Neural2-C"),
        ("pt-PT", "pt-BR", "pt-BR-Neural2-B"),
        ("zh-TW", "cmn-CN", "cmn-CN-Wavenet-B"),
        ("ja", "ja-JP", "ja-JP-Neural2-C"),
        ("ko-KR", "ko-KR", "ko-KR-Neural2-C"),
    ])
    def test_table(self, tag, code, name):
        assert resolve_voice(tag) == VoiceConfig(code, name)

    @pytest.mark.parametrize("tag", [None, "", "   ", "xx", "tlh-KL"])
    def test_fallback_to_english(self, tag):
        assert resolve_voice(tag) == VOICES["en"]

    def test_voice_override_keeps_language_code(self):
        voice = resolve_voice("es", voice_name="es-ES-Wavenet-C")
        assert voice.language_code == "es-ES"
        assert voice.voice_name == "es-ES-Wavenet-C"

    def test_is_supported(self):
        assert is_supported("pt-BR") is True
        assert is_supported("sw") is False
        assert is_supported(None) is False

    def test_primary_subtag(self):
        assert primary_subtag(" EN_us ") == "en"
        assert primary_subtag(None) == ""

    def test_to_dict(self):
        assert VOICES["en"].to_dict() == {"languageCode": "en-US", "voiceName": "en-US-Neural2-D"}


class TestFingerprint:
    """Tests for fingerprint()."""

    def test_known_value(self):
        voice = VoiceConfig("en-US", "en-US-Neural2-D")
        expected = hashlib.sha256(
            b'Hello.|{"languageCode":"en-US","voiceName":"en-US-Neural2-D"}'
        ).hexdigest()
        assert fingerprint("Hello.", voice) == expected

    def test_deterministic(self):
        voice = resolve_voice("es")
        assert fingerprint("Hola.", voice) == fingerprint("Hola.", voice)

    def test_format(self):
        key = fingerprint("x", resolve_voice("en"))
        assert len(key) == 64
        assert key == key.lower()
        int(key, 16)

    def test_text_sensitivity(self):
        voice = resolve_voice("en")
        assert fingerprint("Hello.", voice) != fingerprint("Hello. ", voice)
        assert fingerprint("Hello.", voice) != fingerprint("hello.", voice)

    def test_voice_sensitivity(self):
        assert fingerprint("Hi.", resolve_voice("en")) != fingerprint("Hi.", resolve_voice("es"))
        assert fingerprint("Hi.", resolve_voice("en")) != fingerprint("Hi.", resolve_voice("en", "en-US-Neural2-F"))

    def test_canonical_voice_sorted_compact(self):
        assert canonical_voice(VoiceConfig("ja-JP", "ja-JP-Neural2-C")) == (
            '{"languageCode":"ja-JP","voiceName":"ja-JP-Neural2-C"}'
        )

    def test_unicode_text(self):
        voice = resolve_voice("ja")
        assert fingerprint("こんにちは。", voice) != fingerprint("こんばんは。", voice)
