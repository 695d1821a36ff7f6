from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Protocol, Sequence, TypeVar

from .logging import log_event
from .prompts import format_email_block, prompt_overhead_text
from .schema import RawEmail, TokenBudget

DEFAULT_CONTEXT_LIMIT = 128_000
DEFAULT_RESERVED_TOKENS = 10_000
SAMPLE_SIZE = 5

MODEL_CONTEXT_LIMITS: Mapping[str, int] = MappingProxyType(
    {
        "gpt-5": 400_000,
        "gpt-5-mini": 400_000,
        "gpt-5-nano": 400_000,
        "gpt-4.1": 1_047_576,
        "gpt-4.1-mini": 1_047_576,
        "gpt-4.1-nano": 1_047_576,
        "gpt-4o": 128_000,
        "gpt-4o-mini": 128_000,
        "gpt-4-turbo": 128_000,
        "gpt-4": 8_192,
        "gpt-3.5-turbo": 16_385,
        "o1": 200_000,
        "o1-mini": 128_000,
        "o3": 200_000,
        "o3-mini": 200_000,
        "o4-mini": 200_000,
    }
)

T = TypeVar("T")


class Estimator(Protocol):
    def estimate(self, text: str, model: str) -> int: ...


@dataclass
class Budget:
    """Caps the number of model calls in one run."""

    max_calls: int
    calls_used: int = 0

    def can_call(self) -> bool:
        return self.max_calls <= 0 or self.calls_used < self.max_calls

    def consume_call(self, n: int = 1) -> None:
        self.calls_used += n


def context_limit(model: str, limits: Mapping[str, int] = MODEL_CONTEXT_LIMITS) -> int:
    """Context window for a model id; dated snapshots (gpt-4o-2024-08-06) map to their family."""
    m = (model or "").strip().lower()
    if m in limits:
        return limits[m]
    best = ""
    for name in limits:
        if m.startswith(name + "-") and len(name) > len(best):
            best = name
    return limits[best] if best else DEFAULT_CONTEXT_LIMIT


def compute_batch_size(
    budget: TokenBudget, *, prompt_overhead: int, avg_tokens_per_email: float
) -> int:
    if avg_tokens_per_email <= 0:
        return budget.max_batch_size
    calculated = math.floor((budget.available_tokens - prompt_overhead) / avg_tokens_per_email)
    return max(1, min(calculated, budget.max_batch_size))


def plan_batch_size(
    emails: Sequence[RawEmail],
    model: str,
    max_batch_size: int,
    *,
    estimator: Estimator,
    limits: Mapping[str, int] = MODEL_CONTEXT_LIMITS,
    reserved_tokens: int = DEFAULT_RESERVED_TOKENS,
    max_chars_per_email: int = 0,
) -> int:
    if not emails:
        return max_batch_size

    budget = TokenBudget(
        model_context_limit=context_limit(model, limits),
        reserved_tokens=reserved_tokens,
        max_batch_size=max_batch_size,
    )
    sample = list(emails[:SAMPLE_SIZE])
    sample_total = sum(
        estimator.estimate(format_email_block(e, i, max_chars=max_chars_per_email), model)
        for i, e in enumerate(sample, start=1)
    )
    prompt_overhead = estimator.estimate(prompt_overhead_text(), model)
    avg = sample_total / len(sample)
    size = compute_batch_size(budget, prompt_overhead=prompt_overhead, avg_tokens_per_email=avg)

    log_event(
        "batch_size_planned",
        model=model,
        context_limit=budget.model_context_limit,
        reserved_tokens=reserved_tokens,
        prompt_overhead=prompt_overhead,
        sample_size=len(sample),
        avg_tokens_per_email=round(avg, 1),
        batch_size=size,
        max_batch_size=max_batch_size,
    )
    return size


def plan_batches(items: Sequence[T], size: int) -> List[List[T]]:
    size = max(1, int(size))
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def estimate_prompt_tokens(
    prompt: str, model: str, estimator: Estimator, limits: Optional[Mapping[str, int]] = None
) -> dict:
    tokens = estimator.estimate(prompt, model)
    limit = context_limit(model, limits or MODEL_CONTEXT_LIMITS)
    return {"tokens": tokens, "context_limit": limit, "fits": tokens < limit}
