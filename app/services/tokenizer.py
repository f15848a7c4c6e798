"""Token counting against an embedding model's vocabulary (tiktoken)."""

from __future__ import annotations

from functools import lru_cache

import tiktoken

from app.config.logger import app_logger
from app.config.settings import settings

FALLBACK_ENCODING = "cl100k_base"


@lru_cache(maxsize=16)
def get_encoding(model: str) -> tiktoken.Encoding:
    """Return the encoding for ``model``, or the general-purpose fallback."""
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        app_logger.warning(
            f"No tiktoken encoding registered for '{model}', using {FALLBACK_ENCODING}"
        )
        return tiktoken.get_encoding(FALLBACK_ENCODING)


def count_tokens(text: str, model: str | None = None) -> int:
    """Count the tokens ``text`` costs against ``model``."""
    if not text:
        return 0
    encoding = get_encoding(model or settings.OPENAI_EMBEDDING_MODEL)
    return len(encoding.encode(text, disallowed_special=()))
