"""Boundary-aware text chunking for document embedding.

Token sizes are converted to character budgets (4 chars per token) and each
chunk end is snapped back to the nearest paragraph or sentence break when one
is close enough. All chunking is deterministic: same input + config -> same
chunks, which keeps document reprocessing idempotent.
"""

import math
import re
from dataclasses import dataclass

DEFAULT_TARGET_TOKENS = 900
DEFAULT_OVERLAP_TOKENS = 150

CHARS_PER_TOKEN = 4
WORDS_PER_TOKEN = 0.75

# Window slack (chars) around the nominal chunk end searched for a boundary
BOUNDARY_WINDOW = 100
PARAGRAPH_BREAK = "\n\n"
SENTENCE_BREAKS = (". ", "! ", "? ", ".\n", "!\n", "?\n")

_LONE_SURROGATES = re.compile("[\ud800-\udfff]")


@dataclass(frozen=True)
class ChunkingConfig:
    """Configuration for text chunking.

    Attributes:
        target_tokens: Target chunk size in (estimated) tokens
        overlap_tokens: Number of overlapping tokens between consecutive chunks
    """

    target_tokens: int = DEFAULT_TARGET_TOKENS
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.target_tokens <= 0:
            raise ValueError(f"target_tokens must be positive, got {self.target_tokens}")
        if self.overlap_tokens < 0:
            raise ValueError(f"overlap_tokens must be non-negative, got {self.overlap_tokens}")
        if self.overlap_tokens >= self.target_tokens:
            raise ValueError(
                f"overlap_tokens ({self.overlap_tokens}) must be less than "
                f"target_tokens ({self.target_tokens})"
            )

    @property
    def chunk_chars(self) -> int:
        return tokens_to_chars(self.target_tokens)

    @property
    def overlap_chars(self) -> int:
        return tokens_to_chars(self.overlap_tokens)

    @property
    def stride_chars(self) -> int:
        return self.chunk_chars - self.overlap_chars


@dataclass(frozen=True)
class Chunk:
    """A single text chunk with position information.

    Attributes:
        index: 0-based dense position among the non-empty chunks
        content: Chunk text, trimmed of surrounding whitespace
        token_count: Estimated token count of ``content``
        start_offset: Starting character offset in the original text
        end_offset: Ending character offset (exclusive) in the original text
    """

    index: int
    content: str
    token_count: int
    start_offset: int
    end_offset: int

    def __post_init__(self) -> None:
        """Validate chunk properties."""
        if not self.content:
            raise ValueError("Chunk content cannot be empty")
        if self.start_offset < 0 or self.end_offset <= self.start_offset:
            raise ValueError(
                f"Invalid offsets: start={self.start_offset}, end={self.end_offset}"
            )
        if self.index < 0:
            raise ValueError(f"index must be non-negative, got {self.index}")


def count_tokens(text: str) -> int:
    """Estimate the token count of text from its word count.

    This is a word-based approximation (~0.75 words per token), not a real
    tokenizer count.

    Example:
        >>> count_tokens("three small words")
        4
    """
    words = text.split()
    return math.ceil(len(words) / WORDS_PER_TOKEN)


def tokens_to_chars(tokens: int) -> int:
    """Convert a token budget to a character budget."""
    return tokens * CHARS_PER_TOKEN


def sanitize_text(text: str) -> str:
    """Strip lone UTF-16 surrogate code points (OCR/PDF extraction debris)."""
    return _LONE_SURROGATES.sub("", text)


class BoundaryChunker:
    """Character-budget chunker that snaps chunk ends to text boundaries."""

    def __init__(self, config: ChunkingConfig | None = None):
        """Initialize chunker with configuration.

        Args:
            config: Chunking configuration (defaults to 900/150 tokens)
        """
        self.config = config or ChunkingConfig()

    # The paragraph (80%) and sentence (50%) stride thresholds are measured from
    # the chunk start, not the window start. Measured from the window start
    # they would never snap at the default 900/150 sizes.
    def _find_boundary(self, text: str, start: int, naive_end: int) -> int:
        """Return the snapped end offset for a chunk starting at ``start``."""
        stride = self.config.stride_chars
        search_start = max(start + stride - BOUNDARY_WINDOW, start)
        search_end = min(naive_end + BOUNDARY_WINDOW, len(text))
        window = text[search_start:search_end]
        lead = search_start - start

        paragraph = window.rfind(PARAGRAPH_BREAK)
        if paragraph != -1 and lead + paragraph > stride * 0.8:
            return search_start + paragraph + len(PARAGRAPH_BREAK)

        best = -1
        for marker in SENTENCE_BREAKS:
            pos = window.rfind(marker)
            if pos > best and lead + pos > stride * 0.5:
                best = pos + len(marker)
        if best != -1:
            return search_start + best

        return naive_end

    def chunk(self, text: str) -> list[Chunk]:
        """Split text into overlapping chunks.

        Args:
            text: Input text to chunk

        Returns:
            List of Chunk objects in reading order (empty for blank input)
        """
        if not text or not text.strip():
            return []

        length = len(text)
        chunk_chars = self.config.chunk_chars
        overlap_chars = self.config.overlap_chars

        chunks: list[Chunk] = []
        start = 0
        index = 0

        while start < length:
            end = min(start + chunk_chars, length)
            if end < length:
                end = self._find_boundary(text, start, end)

            content = text[start:end].strip()
            if content:
                chunks.append(
                    Chunk(
                        index=index,
                        content=content,
                        token_count=count_tokens(content),
                        start_offset=start,
                        end_offset=end,
                    )
                )
                index += 1

            if end >= length:
                break

            next_start = end - overlap_chars
            # A boundary snapped close to ``start`` must still move the window forward
            if next_start <= start:
                next_start = end
            start = next_start

        return chunks


def chunk_text(
    text: str,
    target_tokens: int = DEFAULT_TARGET_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[Chunk]:
    """Convenience function to chunk text without building a chunker.

    Args:
        text: Input text to chunk
        target_tokens: Target chunk size in tokens
        overlap_tokens: Number of overlapping tokens

    Returns:
        List of Chunk objects

    Example:
        >>> chunks = chunk_text("Long text here...", target_tokens=900, overlap_tokens=150)
        >>> len(chunks)
        1
    """
    config = ChunkingConfig(target_tokens=target_tokens, overlap_tokens=overlap_tokens)
    return BoundaryChunker(config).chunk(text)
