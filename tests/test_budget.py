import pytest

from jobmail.core.budget import (
    DEFAULT_CONTEXT_LIMIT,
    Budget,
    compute_batch_size,
    context_limit,
    estimate_prompt_tokens,
    plan_batch_size,
    plan_batches,
)
from jobmail.core.schema import TokenBudget

from conftest import FakeEstimator

LIMITS = {"test-model": 100_000}


def test_batch_size_is_capped_by_max():
    budget = TokenBudget(model_context_limit=100_000, reserved_tokens=10_000, max_batch_size=20)
    assert compute_batch_size(budget, prompt_overhead=5_000, avg_tokens_per_email=1_000) == 20


def test_batch_size_from_available_tokens():
    budget = TokenBudget(model_context_limit=100_000, reserved_tokens=10_000, max_batch_size=200)
    assert compute_batch_size(budget, prompt_overhead=5_000, avg_tokens_per_email=1_000) == 85


def test_plan_uses_sampled_emails(make_email):
    emails = [make_email(subject=f"s{i}") for i in range(12)]
    size = plan_batch_size(
        emails,
        "test-model",
        20,
        estimator=FakeEstimator(per_email=1_000, overhead=5_000),
        limits=LIMITS,
        reserved_tokens=10_000,
    )
    assert size == 20

    size = plan_batch_size(
        emails,
        "test-model",
        100,
        estimator=FakeEstimator(per_email=1_000, overhead=5_000),
        limits=LIMITS,
        reserved_tokens=10_000,
    )
    assert size == 85


def test_empty_email_list_returns_max():
    assert plan_batch_size([], "test-model", 7, estimator=FakeEstimator(), limits=LIMITS) == 7


def test_oversized_email_still_gets_its_own_batch(make_email):
    size = plan_batch_size(
        [make_email()],
        "test-model",
        20,
        estimator=FakeEstimator(per_email=500_000, overhead=5_000),
        limits=LIMITS,
        reserved_tokens=10_000,
    )
    assert size == 1


def test_context_limit_lookup():
    assert context_limit("gpt-4o-mini") == 128_000
    assert context_limit("gpt-4o-2024-08-06") == 128_000
    assert context_limit("gpt-4-0613") == 8_192
    assert context_limit("gpt-4.1-mini-2025-04-14") == 1_047_576
    assert context_limit("something-else") == DEFAULT_CONTEXT_LIMIT


def test_token_budget_rejects_reserve_above_limit():
    with pytest.raises(ValueError):
        TokenBudget(model_context_limit=8_000, reserved_tokens=10_000, max_batch_size=5)
    with pytest.raises(ValueError):
        TokenBudget(model_context_limit=8_000, reserved_tokens=1_000, max_batch_size=0)


def test_plan_batches_preserves_order():
    assert plan_batches([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert plan_batches([], 3) == []


def test_call_budget():
    unlimited = Budget(max_calls=0)
    unlimited.consume_call(50)
    assert unlimited.can_call()

    capped = Budget(max_calls=2)
    capped.consume_call()
    assert capped.can_call()
    capped.consume_call()
    assert not capped.can_call()


def test_prompt_estimate_reports_fit():
    out = estimate_prompt_tokens("x", "test-model", FakeEstimator(overhead=200_000), LIMITS)
    assert out == {"tokens": 200_000, "context_limit": 100_000, "fits": False}
