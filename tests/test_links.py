import pytest

from jobmail.core.errors import SelectorError
from jobmail.core.links import (
    extract_links,
    extract_links_with_stats,
    normalize_selector,
    validate_selector,
)
from jobmail.core.schema import SourcePolicy


def _policy(selector: str = "//a[@href]", exclusions=("Unsubscribe",)) -> SourcePolicy:
    return SourcePolicy.build(
        sender_match="alerts@jobs.example.com",
        link_patterns=["https://jobs.example.com/view/*"],
        link_selector=selector,
        text_exclusions=exclusions,
    )


THREE_ANCHORS = """
<html><body>
  <a href="https://jobs.example.com/view/1">Backend Engineer</a>
  <a href="https://jobs.example.com/view/2">UNSUBSCRIBE from these alerts</a>
  <a href="https://ads.example.net/promo">Data Analyst</a>
</body></html>
"""


def test_text_exclusion_and_pattern_filter_leave_one_candidate():
    links, stats, _ = extract_links_with_stats(THREE_ANCHORS, _policy())
    assert [(c.url, c.anchor_text) for c in links] == [
        ("https://jobs.example.com/view/1", "Backend Engineer")
    ]
    assert stats.matched_nodes == 3
    assert stats.excluded_by_text == 1
    assert stats.excluded_by_pattern == 1
    assert stats.excluded_samples and "UNSUBSCRIBE" in stats.excluded_samples[0]


def test_candidates_keep_document_order():
    html = "".join(
        f'<p><a href="https://jobs.example.com/view/{i}">Job {i}</a></p>' for i in range(4)
    )
    assert [c.anchor_text for c in extract_links(html, _policy())] == [
        "Job 0",
        "Job 1",
        "Job 2",
        "Job 3",
    ]


def test_malformed_markup_still_yields_recoverable_anchor():
    html = '<div><table><tr><td><a href="https://jobs.example.com/view/9">Broken <b>title</div>'
    links = extract_links(html, _policy())
    assert [c.url for c in links] == ["https://jobs.example.com/view/9"]
    assert links[0].anchor_text.startswith("Broken")


def test_xhtml_namespace_is_stripped():
    html = (
        '<html xmlns="http://www.w3.org/1999/xhtml"><body>'
        '<a href="https://jobs.example.com/view/5">Designer</a></body></html>'
    )
    links, stats, normalized = extract_links_with_stats(html, _policy())
    assert stats.namespace_removed
    assert "xmlns" not in normalized
    assert [c.anchor_text for c in links] == ["Designer"]


def test_nodes_without_href_are_skipped():
    html = '<a>No link here</a><a href="https://jobs.example.com/view/3">Tester</a>'
    links, stats, _ = extract_links_with_stats(html, _policy(selector="//a"))
    assert [c.anchor_text for c in links] == ["Tester"]
    assert stats.missing_href == 1


def test_empty_body_yields_nothing():
    assert extract_links("", _policy()) == []
    assert extract_links("   ", _policy()) == []


def test_custom_selector_narrows_nodes():
    html = (
        '<div class="job"><a href="https://jobs.example.com/view/1">In card</a></div>'
        '<a href="https://jobs.example.com/view/2">Footer</a>'
    )
    links = extract_links(html, _policy(selector="//div[@class='job']//a[@href]"))
    assert [c.anchor_text for c in links] == ["In card"]


def test_invalid_selector_raises_selector_error():
    with pytest.raises(SelectorError) as info:
        validate_selector("//a[", "alerts@jobs.example.com")
    assert info.value.selector == "//a["
    assert info.value.sender == "alerts@jobs.example.com"

    with pytest.raises(SelectorError):
        extract_links(THREE_ANCHORS, _policy(selector="//a[@href"))


def test_uppercase_element_names_in_selector_match_parsed_tags():
    html = (
        '<DIV CLASS="Job"><A HREF="https://jobs.example.com/view/1">In card</A></DIV>'
        '<a href="https://jobs.example.com/view/2">Footer</a>'
    )
    links = extract_links(html, _policy(selector="//DIV[@class='Job']//A[@href]"))
    assert [c.anchor_text for c in links] == ["In card"]


def test_selector_normalization_leaves_literals_and_functions_alone():
    assert normalize_selector("//A[@href][contains(., 'View JOB')]") == (
        "//a[@href][contains(., 'View JOB')]"
    )
    assert normalize_selector("//TD/text()") == "//td/text()"
    assert normalize_selector('//a[@title="Apply/NOW"]') == '//a[@title="Apply/NOW"]'
