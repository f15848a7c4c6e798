"""Adaptive word-window chunking under an embedding model's token ceiling.

Text is split into overlapping windows of ``max_words`` words. Any window
whose token count is over ``max_tokens`` is re-split with half the window and
half the overlap, and the result is spliced in where the window was. Splitting
stops at ``MIN_SPLIT_WORDS``; a window still over budget at that size is
emitted as-is and must be caught with :func:`find_oversized_chunks`.

Everything here is pure: the token counter is passed in, so the same inputs
always produce the same chunk sequence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence

from app.config.settings import settings
from app.services.exceptions import ChunkLengthExceeded
from app.services.tokenizer import count_tokens
from app.services.vector_store import chunk_vector_id

MIN_SPLIT_WORDS = 50

TokenCounter = Callable[[str, Optional[str]], int]


@dataclass(frozen=True)
class TextChunk:
    """One ordered slice of a file's text."""

    file_id: str
    ordinal: int
    text: str

    @property
    def vector_id(self) -> str:
        return chunk_vector_id(self.file_id, self.ordinal)


def split_words(text: str) -> List[str]:
    """Split text on any run of whitespace, dropping empty edges."""
    return text.split()


def _check_window(max_words: int, overlap: int) -> None:
    if max_words <= 0:
        raise ValueError(f"max_words must be positive, got {max_words}")
    if overlap < 0 or overlap >= max_words:
        raise ValueError(
            f"overlap must satisfy 0 <= overlap < max_words, got overlap={overlap} max_words={max_words}"
        )


def _windows(words: Sequence[str], max_words: int, overlap: int) -> Iterator[Sequence[str]]:
    stride = max_words - overlap
    for start in range(0, len(words), stride):
        yield words[start : start + max_words]
        # The next window would sit entirely inside this one's overlap
        if start + max_words >= len(words):
            break


def chunk_words(text: str, max_words: int = 400, overlap: int = 50) -> List[str]:
    """Plain sliding-window chunking with no token feedback."""
    _check_window(max_words, overlap)
    return [" ".join(window) for window in _windows(split_words(text), max_words, overlap)]


def max_split_depth(max_words: int) -> int:
    """Number of halvings it takes ``max_words`` to reach the split floor."""
    depth = 0
    while max_words > MIN_SPLIT_WORDS:
        max_words //= 2
        depth += 1
    return depth


def chunk_text_adaptive(
    text: str,
    max_words: int = 400,
    overlap: int = 50,
    max_tokens: int = 8192,
    model: Optional[str] = None,
    token_counter: TokenCounter = count_tokens,
) -> List[str]:
    """Chunk ``text`` so that every chunk fits ``max_tokens`` where possible.

    Args:
        text: Extracted document text.
        max_words: Words per window at the top level.
        overlap: Words shared by consecutive windows; must be below ``max_words``.
        max_tokens: Token ceiling of the embedding model.
        model: Embedding model whose vocabulary is used for counting.
        token_counter: ``(text, model) -> int``; defaults to tiktoken.

    Returns:
        Chunk strings in document order. Empty or whitespace-only text gives
        an empty list.

    Raises:
        ValueError: If ``overlap`` is not in ``[0, max_words)``.
    """
    _check_window(max_words, overlap)
    words = split_words(text)
    if not words:
        return []
    return _split_adaptive(
        words,
        max_words,
        overlap,
        max_tokens,
        model or settings.OPENAI_EMBEDDING_MODEL,
        token_counter,
        max_split_depth(max_words),
    )


def _split_adaptive(
    words: Sequence[str],
    max_words: int,
    overlap: int,
    max_tokens: int,
    model: str,
    token_counter: TokenCounter,
    depth_left: int,
) -> List[str]:
    chunks: List[str] = []
    for window in _windows(words, max_words, overlap):
        chunk = " ".join(window)
        can_split = max_words > MIN_SPLIT_WORDS and depth_left > 0
        if can_split and token_counter(chunk, model) > max_tokens:
            sub_words = max_words // 2
            sub_overlap = min(overlap // 2, sub_words - 1)
            chunks.extend(
                _split_adaptive(
                    window,
                    sub_words,
                    sub_overlap,
                    max_tokens,
                    model,
                    token_counter,
                    depth_left - 1,
                )
            )
        else:
            chunks.append(chunk)
    return chunks


def find_oversized_chunks(
    chunks: Sequence[str],
    max_tokens: int = 8192,
    model: Optional[str] = None,
    token_counter: TokenCounter = count_tokens,
) -> List[int]:
    """Return the positions of chunks whose token count is over ``max_tokens``."""
    model = model or settings.OPENAI_EMBEDDING_MODEL
    return [i for i, chunk in enumerate(chunks) if token_counter(chunk, model) > max_tokens]


def build_chunks(file_id: str, texts: Sequence[str]) -> List[TextChunk]:
    return [TextChunk(file_id=file_id, ordinal=i, text=t) for i, t in enumerate(texts)]


def prepare_chunks(
    file_id: str,
    text: str,
    max_words: int = 400,
    overlap: int = 50,
    max_tokens: int = 8192,
    model: Optional[str] = None,
    token_counter: TokenCounter = count_tokens,
) -> List[TextChunk]:
    """Chunk a file's text and check every chunk against the token ceiling.

    Raises:
        ChunkLengthExceeded: If splitting hit its floor and left a chunk over
            ``max_tokens``. Nothing from such a file may be embedded.
    """
    texts = chunk_text_adaptive(text, max_words, overlap, max_tokens, model, token_counter)
    oversized = find_oversized_chunks(texts, max_tokens, model, token_counter)
    if oversized:
        raise ChunkLengthExceeded(oversized, len(texts))
    return build_chunks(file_id, texts)
