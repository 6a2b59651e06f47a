"""
Tests for MP3 segment merging and stage timing.

Tests cover:
- ID3v2 tag length parsing (syncsafe size, footer flag, malformed headers)
- concat_audio() ordering and mid-stream tag stripping
- timeit context manager
"""
import time

import pytest

from sermon_tts.utils.audio import MP3_CONTENT_TYPE, concat_audio, id3v2_length
from sermon_tts.utils.timeit import timeit


def _id3(body: bytes, footer: bool = False) -> bytes:
    """Build an ID3v2.4 tag around body with a syncsafe size."""
    size = len(body)
    syncsafe = bytes([(size >> 21) & 0x7F, (size >> 14) & 0x7F, (size >> 7) & 0x7F, size & 0x7F])
    flags = 0x10 if footer else 0x00
    tag = b"ID3" + b"\x04\x00" + bytes([flags]) + syncsafe + body
    if footer:
        tag += b"3DI" + b"\x04\x00" + bytes([flags]) + syncsafe
    return tag


FRAME = b"\xff\xfb\x90\x00" + b"\x00" * 12


class TestId3v2Length:
    def test_no_tag(self):
        assert id3v2_length(FRAME) == 0

    def test_short_input(self):
        assert id3v2_length(b"ID3") == 0
        assert id3v2_length(b"") == 0

    def test_simple_tag(self):
        tag = _id3(b"x" * 20)
        assert id3v2_length(tag + FRAME) == len(tag)

    def test_large_syncsafe_size(self):
        tag = _id3(b"y" * 300)
        assert id3v2_length(tag + FRAME) == 310

    def test_footer_flag(self):
        tag = _id3(b"z" * 5, footer=True)
        assert id3v2_length(tag + FRAME) == len(tag) == 25

    def test_invalid_syncsafe_byte(self):
        bad = b"ID3\x04\x00\x00\x00\x00\x80\x00" + FRAME
        assert id3v2_length(bad) == 0

    def test_truncated_tag_clamped(self):
        tag = _id3(b"w" * 50)[:30]
        assert id3v2_length(tag) == 30


class TestConcatAudio:
    def test_order_preserved(self):
        audio, timings = concat_audio([b"<a>", b"<b>", b"<c>"])
        assert audio == b"<a><b><c>"
        assert "merge" in timings
        assert timings["merge"] >= 0.0

    def test_first_tag_kept_later_tags_dropped(self):
        first = _id3(b"title") + FRAME
        second = _id3(b"other") + FRAME
        audio, _ = concat_audio([first, second])
        assert audio == first + FRAME
        assert audio.count(b"ID3") == 1

    def test_single_part(self):
        audio, _ = concat_audio([b"only"])
        assert audio == b"only"

    def test_empty(self):
        audio, _ = concat_audio([])
        assert audio == b""

    def test_content_type(self):
        assert MP3_CONTENT_TYPE == "audio/mpeg"


class TestTimeit:
    def test_timing_recorded(self):
        with timeit("stage", meta={"chunks": 2}) as t:
            time.sleep(0.01)
        assert t.timing.name == "stage"
        assert t.timing.meta == {"chunks": 2}
        assert t.timing.seconds >= 0.005
        assert t.seconds == t.timing.seconds

    def test_timing_recorded_on_error(self):
        t = timeit("boom")
        with pytest.raises(RuntimeError):
            with t:
                raise RuntimeError("x")
        assert t.timing is not None

    def test_seconds_before_enter(self):
        assert timeit("idle").seconds == 0.0
