"""
Text Chunker Module

Splits text that is too long for one chat-completion call into overlapping
chunks cut at natural boundaries, and merges the translated chunks back.

Each continuation chunk repeats the last OVERLAP_CHARS source characters of
the text before it so the translator sees the context across the cut. On
merge the same number of leading characters is dropped from the translated
chunk. Translation does not preserve character counts, so this removal is
approximate.
"""

import unicodedata
from dataclasses import dataclass
from typing import List, Optional, Sequence

from llm_translator.config import CHUNK_OVERLAP_CHARS, DEFAULT_MAX_CHUNK_CHARS
from llm_translator.logger import get_logger

logger = get_logger(__name__)

SENTENCE_ENDINGS = frozenset('.!?。！？')
SOFT_BOUNDARIES = frozenset(',;:、；：')
ZERO_WIDTH_JOINER = '\u200d'
REGIONAL_INDICATORS = (0x1F1E6, 0x1F1FF)


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of the source text."""
    index: int
    text: str
    is_continuation: bool
    overlap_len: int  # leading characters repeated from the previous chunk's source


@dataclass(frozen=True)
class TranslatedChunk:
    index: int
    translated_text: str
    overlap_len: int


def _extends_cluster(ch: str) -> bool:
    """True for code points that attach to the preceding character."""
    code = ord(ch)
    return (
        ch == ZERO_WIDTH_JOINER
        or unicodedata.category(ch) in ('Mn', 'Mc', 'Me')
        or 0xFE00 <= code <= 0xFE0F      # variation selectors
        or 0x1F3FB <= code <= 0x1F3FF    # emoji skin tone modifiers
        or 0xE0020 <= code <= 0xE007F    # emoji tag sequences
    )


def _is_regional_indicator(ch: str) -> bool:
    return REGIONAL_INDICATORS[0] <= ord(ch) <= REGIONAL_INDICATORS[1]


def is_cluster_boundary(text: str, i: int) -> bool:
    """
    Whether cutting text at index i keeps user-perceived characters whole.

    Combining marks, joiner sequences, emoji modifiers, flag pairs and CRLF
    pairs are never split.
    """
    if i <= 0 or i >= len(text):
        return True
    prev, cur = text[i - 1], text[i]
    if prev == '\r' and cur == '\n':
        return False
    if prev == ZERO_WIDTH_JOINER:
        return False
    if _is_regional_indicator(prev) and _is_regional_indicator(cur):
        # Flags pair up left to right; an odd run before i means i is mid-flag
        run = 0
        j = i - 1
        while j >= 0 and _is_regional_indicator(text[j]):
            run += 1
            j -= 1
        return run % 2 == 0
    return not _extends_cluster(cur)


def find_boundary(text: str, start: int, target: int) -> Optional[int]:
    """
    Find a natural cut point in (start, target], searching backwards from target.

    Preference order:
    1. After a sentence terminator followed by whitespace or end of text
    2. After a line break
    3. After soft punctuation (comma, semicolon, colon and CJK equivalents)
    4. At a whitespace run that follows a non-space character

    Args:
        text: Full source text
        start: Cut must land strictly after this index
        target: Naive cut point (exclusive end of the chunk)

    Returns:
        The end index, or None when no boundary exists in the window.
    """
    total = len(text)
    candidates = range(target, start, -1)

    for i in candidates:
        if text[i - 1] in SENTENCE_ENDINGS and (i >= total or text[i].isspace()):
            return i

    for i in candidates:
        if text[i - 1] == '\n':
            return i

    for i in candidates:
        if text[i - 1] in SOFT_BOUNDARIES and is_cluster_boundary(text, i):
            return i

    for i in candidates:
        if i < total and text[i].isspace() and not text[i - 1].isspace():
            return i

    return None


class TextChunker:
    """Split/merge helper for oversized translation requests."""

    def __init__(self, max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS, overlap_chars: int = CHUNK_OVERLAP_CHARS):
        if max_chunk_chars <= 0:
            raise ValueError("max_chunk_chars must be positive")
        self.max_chunk_chars = max_chunk_chars
        self.overlap_chars = overlap_chars

    def needs_split(self, text: str, max_chunk_chars: Optional[int] = None) -> bool:
        return len(text) > (max_chunk_chars or self.max_chunk_chars)

    def split(self, text: str, max_chunk_chars: Optional[int] = None) -> List[Chunk]:
        """
        Split text into ordered chunks.

        Every chunk carries at most `max_chunk_chars` characters of new text;
        continuation chunks are additionally prefixed with up to
        `overlap_chars` characters taken from the end of the text before them.

        Args:
            text: Source text
            max_chunk_chars: Override of the configured size for this call

        Returns:
            Chunks in index order; a single chunk when the text already fits.
        """
        limit = max_chunk_chars or self.max_chunk_chars
        total = len(text)

        if total <= limit:
            return [Chunk(index=0, text=text, is_continuation=False, overlap_len=0)]

        chunks: List[Chunk] = []
        position = 0     # end of the text already covered
        prev_start = 0

        while position < total:
            if chunks:
                start = max(position - self.overlap_chars, prev_start)
                while start > prev_start and not is_cluster_boundary(text, start):
                    start -= 1
            else:
                start = 0

            naive_end = min(position + limit, total)
            if naive_end < total:
                end = find_boundary(text, position, naive_end) or naive_end
                end = self._settle_end(text, position, end)
            else:
                end = naive_end

            chunks.append(Chunk(
                index=len(chunks),
                text=text[start:end],
                is_continuation=bool(chunks),
                overlap_len=position - start,
            ))

            prev_start = start
            position = end

        logger.debug(f"Split {total} chars into {len(chunks)} chunks (max {limit}, overlap {self.overlap_chars})")
        return chunks

    @staticmethod
    def _settle_end(text: str, position: int, end: int) -> int:
        """Move a cut backwards off a grapheme interior; forwards if the window is one cluster."""
        candidate = end
        while candidate > position + 1 and not is_cluster_boundary(text, candidate):
            candidate -= 1
        if is_cluster_boundary(text, candidate):
            return candidate
        candidate = end
        while candidate < len(text) and not is_cluster_boundary(text, candidate):
            candidate += 1
        return candidate

    def merge(self, chunks: Sequence[TranslatedChunk]) -> str:
        """
        Join translated chunks in index order.

        The first chunk is kept verbatim. Each later chunk loses its first
        `overlap_len` characters; a single ASCII space is inserted when neither
        side of the join already has whitespace. This also applies to scripts
        written without spaces, so CJK output gains a space at each join.
        """
        if not chunks:
            return ""

        ordered = sorted(chunks, key=lambda c: c.index)
        if len(ordered) == 1:
            return ordered[0].translated_text

        parts = [ordered[0].translated_text]
        for chunk in ordered[1:]:
            piece = self._remove_overlap(chunk.translated_text, chunk.overlap_len)
            if not piece:
                continue
            tail = parts[-1]
            if tail and not tail[-1].isspace() and not piece[0].isspace():
                parts.append(' ')
            parts.append(piece)

        return ''.join(parts)

    @staticmethod
    def _remove_overlap(translated: str, overlap_len: int) -> str:
        # Too short to hold the overlap: keep everything rather than drop the chunk
        if overlap_len <= 0 or len(translated) <= overlap_len:
            return translated
        cut = overlap_len
        while cut < len(translated) and not is_cluster_boundary(translated, cut):
            cut += 1
        return translated[cut:]
