from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from lxml import etree
from lxml import html as lxml_html

from .errors import SelectorError
from .logging import log_debug
from .patterns import matches_any
from .schema import CandidateLink, SourcePolicy

RE_XHTML_NS = re.compile(r"""\s+xmlns\s*=\s*(["'])http://www\.w3\.org/1999/xhtml\1""")
RE_QUOTED = re.compile(r"""('[^']*'|"[^"]*")""")
# element name step right after a slash; not a function call, axis or prefixed name
RE_NAME_STEP = re.compile(r"(?<=/)([A-Za-z_][\w.-]*)(?=[\[/|)\s]|$)")


SAMPLE_LIMIT = 5


@dataclass
class LinkStats:
    matched_nodes: int = 0
    missing_href: int = 0
    excluded_by_text: int = 0
    excluded_by_pattern: int = 0
    accepted: int = 0
    parse_errors: int = 0
    namespace_removed: bool = False
    excluded_samples: List[str] = field(default_factory=list)
    mismatch_samples: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "matched_nodes": self.matched_nodes,
            "missing_href": self.missing_href,
            "excluded_by_text": self.excluded_by_text,
            "excluded_by_pattern": self.excluded_by_pattern,
            "accepted": self.accepted,
            "parse_errors": self.parse_errors,
            "namespace_removed": self.namespace_removed,
        }


def strip_default_namespace(html: str) -> str:
    return RE_XHTML_NS.sub("", html or "")


def normalize_selector(selector: str) -> str:
    """Lowercase element name steps outside string literals; the HTML parser lowercases tags."""
    parts = RE_QUOTED.split(selector or "")
    return "".join(
        part if i % 2 else RE_NAME_STEP.sub(lambda m: m.group(1).lower(), part)
        for i, part in enumerate(parts)
    )


def validate_selector(selector: str, sender: str = "") -> etree.XPath:
    try:
        return etree.XPath(normalize_selector(selector))
    except etree.XPathError as ex:
        raise SelectorError(selector, sender, str(ex)) from ex


def parse_markup(html: str) -> Tuple[Optional[Any], int]:
    """Parse with lxml in recover mode. Returns (root or None, number of parser errors)."""
    if not html or not html.strip():
        return None, 0
    parser = lxml_html.HTMLParser(recover=True, encoding="utf-8")
    try:
        root = etree.fromstring(html.encode("utf-8"), parser)
    except (etree.XMLSyntaxError, etree.ParserError):
        return None, len(parser.error_log)
    return root, len(parser.error_log)


def _node_text(node: Any) -> str:
    return "".join(node.itertext()).strip()


def _sample(bucket: List[str], text: str, href: str) -> None:
    if len(bucket) < SAMPLE_LIMIT:
        bucket.append(f"{text[:60]} -> {href[:80]}")


def extract_links_with_stats(
    html: str, policy: SourcePolicy
) -> Tuple[List[CandidateLink], LinkStats, str]:
    """Run the structural pass and also return per-stage counts and the normalized markup."""
    stats = LinkStats()
    normalized = strip_default_namespace(html)
    stats.namespace_removed = len(normalized) != len(html or "")

    query = validate_selector(policy.link_selector, policy.sender_match)
    root, stats.parse_errors = parse_markup(normalized)
    if root is None:
        return [], stats, normalized

    try:
        result = query(root)
    except etree.XPathError as ex:
        raise SelectorError(policy.link_selector, policy.sender_match, str(ex)) from ex

    nodes = [n for n in result if isinstance(n, etree._Element)] if isinstance(result, list) else []
    stats.matched_nodes = len(nodes)

    links: List[CandidateLink] = []
    for node in nodes:
        href = (node.get("href") or "").strip()
        text = _node_text(node)
        if not href:
            stats.missing_href += 1
            continue

        low = text.lower()
        if any(word in low for word in policy.text_exclusions):
            stats.excluded_by_text += 1
            _sample(stats.excluded_samples, text, href)
            continue

        if not matches_any(href, policy.link_patterns):
            stats.excluded_by_pattern += 1
            _sample(stats.mismatch_samples, text, href)
            continue

        links.append(CandidateLink(url=href, anchor_text=text))

    stats.accepted = len(links)
    log_debug("links_extracted", sender=policy.sender_match, **stats.as_dict())
    return links, stats, normalized


def extract_links(html: str, policy: SourcePolicy) -> List[CandidateLink]:
    links, _, _ = extract_links_with_stats(html, policy)
    return links
