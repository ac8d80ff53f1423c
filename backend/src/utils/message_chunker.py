"""
Outbound message chunking for WhatsApp.

Splits an answer into ordered parts no longer than MAX_MESSAGE_LENGTH,
preferring paragraph boundaries, then sentence boundaries, then the last
space before the limit. When more than one part is produced every part is
prefixed with an "[i/n]" marker. The limit applies to part content; the
marker is added afterwards, so MAX_MESSAGE_LENGTH leaves headroom for it
under the transport's hard limit.
"""

import re
from typing import List

from core.constants import MAX_MESSAGE_LENGTH


PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "
_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')
_PART_MARKER = re.compile(r'^\[\d+/\d+\]\n')


def _hard_wrap(sentence: str, max_length: int) -> List[str]:
    """Cut an oversized sentence at the last space at or before max_length (or at max_length)."""
    pieces: List[str] = []
    remaining = sentence.strip()
    while len(remaining) > max_length:
        split_index = remaining.rfind(' ', 0, max_length + 1)
        if split_index <= 0:
            split_index = max_length
        pieces.append(remaining[:split_index].rstrip())
        remaining = remaining[split_index:].lstrip()
    pieces.append(remaining)
    return pieces


class _PartAccumulator:
    """Running "current part" that is flushed whenever the next unit would overflow it."""

    def __init__(self, max_length: int) -> None:
        self.max_length = max_length
        self.parts: List[str] = []
        self.current = ""

    def flush(self) -> None:
        part = self.current.strip()
        if part:
            self.parts.append(part)
        self.current = ""

    def add(self, unit: str, separator: str) -> None:
        candidate = f"{self.current}{separator}{unit}" if self.current else unit
        if len(candidate) > self.max_length:
            self.flush()
            self.current = unit
        else:
            self.current = candidate


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split text into transport-sized parts.

    Args:
        text: Answer to send
        max_length: Maximum content length of each part

    Returns:
        [text] unchanged when it fits; otherwise the ordered parts, each
        prefixed with "[i/n]\\n" when there is more than one
    """
    if len(text) <= max_length:
        return [text]

    accumulator = _PartAccumulator(max_length)

    for paragraph in text.split(PARAGRAPH_SEPARATOR):
        if len(paragraph) <= max_length:
            accumulator.add(paragraph, PARAGRAPH_SEPARATOR)
            continue

        # Oversized paragraph: start a fresh part and fill it sentence by sentence
        accumulator.flush()
        for sentence in _SENTENCE_BOUNDARY.split(paragraph):
            if len(sentence) > max_length:
                accumulator.flush()
                pieces = _hard_wrap(sentence, max_length)
                accumulator.parts.extend(pieces[:-1])
                accumulator.current = pieces[-1]
            else:
                accumulator.add(sentence, SENTENCE_SEPARATOR)

    accumulator.flush()
    parts = accumulator.parts

    total = len(parts)
    if total > 1:
        return [f"[{index}/{total}]\n{part}" for index, part in enumerate(parts, start=1)]
    return parts


def strip_part_marker(part: str) -> str:
    """Remove a leading "[i/n]\\n" marker from a part, if present."""
    return _PART_MARKER.sub('', part, count=1)
