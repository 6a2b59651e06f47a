"""
Text chunking for speech synthesis.

Sermon texts run to tens of thousands of characters while a synthesis call
accepts a few thousand. This module cuts text into ordered segments of at
most ``max_chunk_size`` characters:

    1. Text that already fits is returned as a single segment, untouched.
    2. Otherwise sentences (a run ending in ``.``, ``!`` or ``?`` followed by
       whitespace or end of text) are accumulated greedily into a running
       segment until the next one would overflow it.
    3. A sentence that is itself over budget is accumulated word by word
       with the same rule. A single word longer than the budget becomes a
       segment on its own and is the only way to exceed the budget.

Every segment is an exact slice ``text[start:end]`` of the input, so the
whitespace between two segments belongs to neither. Abbreviations ("Dr. "),
ellipses and missing final punctuation get no special treatment.

Example:
    >>> [s.text for s in split_text("Hello world. This is a test.", 15)]
    ['Hello world.', 'This is a test.']
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from sermon_tts.core.config import Defaults
from sermon_tts.core.logging import get_logger, verbose
from sermon_tts.utils.timeit import timeit

_LOG = get_logger("sermon-tts.chunker")

# Sentence = first non-space char up to terminator(s) followed by whitespace
# or end of text; an unterminated tail runs to the end.
_SENTENCE = re.compile(r"\S.*?(?:[.!?]+(?=\s|\Z)|\Z)", re.DOTALL)
_WORD = re.compile(r"\S+")

Span = Tuple[int, int]


@dataclass(frozen=True)
class TextSegment:
    """One synthesis unit: ``text == source[start:end]``."""
    index: int
    text: str
    start: int
    end: int

    def __len__(self) -> int:
        return len(self.text)


@dataclass
class ChunkResult:
    segments: List[TextSegment]
    timings_s: Dict[str, float]

    @property
    def chunks(self) -> List[str]:
        return [s.text for s in self.segments]


def _sentence_spans(text: str) -> Iterator[Span]:
    for m in _SENTENCE.finditer(text):
        sentence = m.group(0).rstrip()
        if sentence:
            yield m.start(), m.start() + len(sentence)


def _word_spans(text: str, start: int, end: int) -> Iterator[Span]:
    for m in _WORD.finditer(text, start, end):
        yield m.span()


class _Accumulator:
    """Greedy span packer: grows the running span while it fits the budget."""

    def __init__(self, max_chunk_size: int):
        self.max_chunk_size = max_chunk_size
        self.closed: List[Span] = []
        self.running: Optional[Span] = None

    def add(self, start: int, end: int) -> None:
        if self.running is None:
            self.running = (start, end)
        elif end - self.running[0] <= self.max_chunk_size:
            self.running = (self.running[0], end)
        else:
            self.closed.append(self.running)
            self.running = (start, end)

    def close(self) -> None:
        if self.running is not None:
            self.closed.append(self.running)
            self.running = None


def split_text(text: str, max_chunk_size: int = Defaults.CHUNKING_MAX_CHUNK_SIZE) -> List[TextSegment]:
    """
    Split ``text`` into ordered segments of at most ``max_chunk_size`` chars.

    Deterministic: the same input always yields the same segments in
    left-to-right order.

    Raises:
        ValueError: If ``max_chunk_size`` is less than 1.
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if not text:
        return []
    if len(text) <= max_chunk_size:
        return [TextSegment(index=0, text=text, start=0, end=len(text))]

    acc = _Accumulator(max_chunk_size)
    for start, end in _sentence_spans(text):
        if end - start <= max_chunk_size:
            acc.add(start, end)
            continue
        # Oversized sentence: close what we have, then pack its words.
        acc.close()
        for w_start, w_end in _word_spans(text, start, end):
            acc.add(w_start, w_end)
    acc.close()

    return [
        TextSegment(index=i, text=text[start:end], start=start, end=end)
        for i, (start, end) in enumerate(acc.closed)
    ]


def chunk_text(text: str, max_chunk_size: int = Defaults.CHUNKING_MAX_CHUNK_SIZE) -> ChunkResult:
    """split_text() with timing, as used by the generation pipeline."""
    with timeit("chunk") as t:
        segments = split_text(text, max_chunk_size)

    verbose(
        _LOG,
        "chunked",
        chars=len(text),
        segments=len(segments),
        max_chunk_size=max_chunk_size,
        seconds=t.timing.seconds,
    )
    return ChunkResult(segments=segments, timings_s={"chunk": t.timing.seconds})
