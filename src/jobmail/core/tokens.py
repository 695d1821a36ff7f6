from __future__ import annotations

import math
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import tiktoken

from .logging import log_warning

DEFAULT_ENCODING = "o200k_base"

# Prefix -> tiktoken encoding, used when tiktoken does not know the exact model name.
MODEL_ENCODINGS: Mapping[str, str] = MappingProxyType(
    {
        "gpt-5": "o200k_base",
        "gpt-4.1": "o200k_base",
        "gpt-4o": "o200k_base",
        "o1": "o200k_base",
        "o3": "o200k_base",
        "o4": "o200k_base",
        "gpt-4": "cl100k_base",
        "gpt-3.5": "cl100k_base",
    }
)


def heuristic_tokens(text: str) -> int:
    return math.ceil(len(text or "") / 4)


def encoding_name_for(model: str, table: Mapping[str, str] = MODEL_ENCODINGS) -> str:
    m = (model or "").lower()
    best = ""
    for prefix in table:
        if m.startswith(prefix) and len(prefix) > len(best):
            best = prefix
    return table[best] if best else DEFAULT_ENCODING


class TokenEstimator:
    """Approximate token counts for a model, falling back to len/4 when tiktoken is unusable."""

    def __init__(self, encodings: Mapping[str, str] = MODEL_ENCODINGS) -> None:
        self.encodings = encodings
        self._encoders: Dict[str, Any] = {}
        self._unavailable: set[str] = set()

    def _encoder(self, model: str) -> Optional[Any]:
        if model in self._encoders:
            return self._encoders[model]
        if model in self._unavailable:
            return None
        try:
            try:
                enc = tiktoken.encoding_for_model(model)
            except KeyError:
                enc = tiktoken.get_encoding(encoding_name_for(model, self.encodings))
        except Exception as ex:
            self._unavailable.add(model)
            log_warning(
                "tokenizer_unavailable",
                model=model,
                error_type=type(ex).__name__,
                error=str(ex)[:200],
            )
            return None
        self._encoders[model] = enc
        return enc

    def estimate(self, text: str, model: str) -> int:
        text = text or ""
        enc = self._encoder(model)
        if enc is None:
            return heuristic_tokens(text)
        try:
            return len(enc.encode(text, disallowed_special=()))
        except Exception as ex:
            log_warning(
                "tokenizer_encode_failed",
                model=model,
                error_type=type(ex).__name__,
                error=str(ex)[:200],
            )
            return heuristic_tokens(text)
