import json

import pytest

from jobmail.core.errors import BudgetExceededError, ProviderError, ResponseFormatError
from jobmail.core.llm import STRICT_PREFIX, LLMClient, listings_from_items, parse_listings
from jobmail.core.llm_providers.registry import (
    get_provider,
    list_providers,
    register_provider,
    unregister_provider,
)

from conftest import FakeProvider

ITEMS = [
    {
        "emailIndex": 1,
        "emailFrom": "alerts@jobs.example.com",
        "emailSubject": "New jobs",
        "emailDate": "Mon",
        "jobTitle": "Backend Engineer",
        "jobLink": "https://jobs.example.com/view/1",
    }
]


def _cfg(**extra):
    cfg = {"provider": "fake", "model": "test-model", "retry_on_invalid_json": False}
    cfg.update(extra)
    return cfg


def test_wrapped_and_bare_arrays_parse_identically():
    assert parse_listings(json.dumps({"jobs": ITEMS})) == parse_listings(json.dumps(ITEMS))


def test_other_wrapper_names_are_accepted():
    assert parse_listings(json.dumps({"listings": ITEMS})) == ITEMS


def test_empty_array_is_a_valid_answer():
    assert parse_listings("[]") == []
    assert parse_listings('{"jobs": []}') == []
    assert parse_listings('{"jobs": null}') == []


@pytest.mark.parametrize("content", ["", "   ", "Sorry, I cannot help with that.", '"jobs"'])
def test_unparseable_answers_raise(content):
    with pytest.raises(ResponseFormatError):
        parse_listings(content)


def test_object_without_listing_field_raises():
    with pytest.raises(ResponseFormatError) as info:
        parse_listings('{"answer": 42}')
    assert info.value.raw == '{"answer": 42}'


def test_json_is_recovered_from_code_fence():
    content = "Here you go:\n```json\n" + json.dumps({"jobs": ITEMS}) + "\n```"
    assert parse_listings(content) == ITEMS


def test_schema_violation_raises():
    with pytest.raises(ResponseFormatError):
        parse_listings(json.dumps([{"jobTitle": 3, "jobLink": "https://x"}]))
    with pytest.raises(ResponseFormatError):
        parse_listings(json.dumps(["just a string"]))


def test_listings_take_metadata_from_referenced_email(make_email):
    batch = [
        make_email(sender="a@x.com", subject="First", date="d1"),
        make_email(sender="b@y.com", subject="Second", date="d2"),
    ]
    items = [
        {"emailIndex": 2, "emailFrom": "wrong", "jobTitle": " QA  Lead ", "jobLink": "https://q"},
        {"emailSubject": "First", "jobTitle": "Dev", "jobLink": "https://d"},
        {"emailFrom": "c@z.com", "emailSubject": "?", "jobTitle": "Ops", "jobLink": "https://o"},
    ]
    listings, dropped = listings_from_items(items, batch)
    assert dropped == 0
    assert [(j.email_from, j.email_subject, j.job_title) for j in listings] == [
        ("b@y.com", "Second", "QA Lead"),
        ("a@x.com", "First", "Dev"),
        ("c@z.com", "?", "Ops"),
    ]


def test_entries_missing_title_or_link_are_dropped(make_email):
    items = [
        {"jobTitle": "", "jobLink": "https://x"},
        {"jobTitle": "Analyst", "jobLink": None},
        {"jobTitle": "Analyst", "jobLink": "https://ok"},
    ]
    listings, dropped = listings_from_items(items, [make_email()])
    assert dropped == 2
    assert [j.job_link for j in listings] == ["https://ok"]


def test_call_batch_uses_injected_provider(make_email):
    provider = FakeProvider([{"jobs": ITEMS}])
    llm = LLMClient(_cfg(temperature=0.3), provider=provider)
    result = llm.call_batch([make_email(subject="New jobs")])

    assert [j.job_title for j in result.listings] == ["Backend Engineer"]
    call = provider.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.3
    assert "=== EMAIL 1 ===" in call["user_prompt"]
    assert llm.usage["calls"] == 1 and llm.usage["total_tokens"] == 120


def test_invalid_json_is_retried_once_with_strict_prompt(make_email):
    provider = FakeProvider(["not json", {"jobs": []}])
    llm = LLMClient(_cfg(retry_on_invalid_json=True), provider=provider)
    result = llm.call_batch([make_email()])

    assert result.listings == []
    assert len(provider.calls) == 2
    assert provider.calls[1]["temperature"] == 0.0
    assert provider.calls[1]["user_prompt"].startswith(STRICT_PREFIX)


def test_invalid_json_without_retry_surfaces_raw_response(make_email):
    llm = LLMClient(_cfg(), provider=FakeProvider(["not json"]))
    with pytest.raises(ResponseFormatError) as info:
        llm.call_batch([make_email()])
    assert info.value.raw == "not json"


def test_provider_errors_and_readiness(make_email):
    llm = LLMClient(_cfg(), provider=FakeProvider([RuntimeError("rate limited")]))
    with pytest.raises(ProviderError):
        llm.call_batch([make_email()])

    idle = LLMClient(_cfg(), provider=FakeProvider(ready=False))
    assert not idle.ready()
    with pytest.raises(ProviderError):
        idle.call_batch([make_email()])


def test_call_budget_is_enforced(make_email):
    llm = LLMClient(_cfg(max_calls_per_run=1), provider=FakeProvider(["[]", "[]"]))
    llm.call_batch([make_email()])
    with pytest.raises(BudgetExceededError):
        llm.call_batch([make_email()])


def test_fallback_provider_from_registry(make_email):
    backup = FakeProvider([{"jobs": ITEMS}])
    backup.name = "backup"
    assert register_provider(backup) is None
    try:
        assert "backup" in list_providers()
        llm = LLMClient(
            _cfg(fallback_providers=["backup"]),
            provider=FakeProvider([RuntimeError("primary down")]),
        )
        result = llm.call_batch([make_email(subject="New jobs")])
        assert result.provider == "backup"
        assert len(result.listings) == 1
    finally:
        unregister_provider("backup")
    assert get_provider("backup") is None


def test_extract_batch_returns_listings_only(make_email):
    llm = LLMClient(_cfg(), provider=FakeProvider([ITEMS]))
    assert [j.job_link for j in llm.extract_batch([make_email()])] == [
        "https://jobs.example.com/view/1"
    ]
