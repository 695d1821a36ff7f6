from __future__ import annotations

import html as _html
import re

from bs4 import BeautifulSoup

RE_INLINE_SPACE = re.compile(r"[ \t\r\f\v\u00a0]+")
RE_HTML_HINT = re.compile(r"<\s*(html|body|div|table|td|a|p|br|span|img)\b", re.IGNORECASE)

DROP_TAGS = ["script", "style", "head", "noscript", "template"]


def looks_like_html(body: str) -> bool:
    return bool(RE_HTML_HINT.search(body or ""))


def clean_text(text: str) -> str:
    """Collapse runs of spaces inside lines and drop blank or repeated lines."""
    if not text:
        return ""
    t = _html.unescape(text)
    lines = []
    prev = None
    for raw in t.splitlines():
        line = RE_INLINE_SPACE.sub(" ", raw).strip()
        if not line or line == prev:
            continue
        lines.append(line)
        prev = line
    return "\n".join(lines)


def html_to_text(html: str) -> str:
    """Visible text of an HTML email, with link targets kept inline as `text (url)`."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(DROP_TAGS):
        tag.decompose()
    for a in soup.find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if not href or href.startswith(("#", "mailto:", "tel:")):
            continue
        label = a.get_text(" ", strip=True)
        a.replace_with(f"{label} ({href})" if label else href)
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return clean_text(soup.get_text("\n"))


def truncate_text(text: str, max_chars: int) -> str:
    if not text:
        return ""
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text

    cut = text[:max_chars]
    # try to cut at a natural boundary
    for sep in ["\n", ". ", "; ", ", "]:
        idx = cut.rfind(sep)
        if idx > max_chars * 0.7:
            return cut[: idx + len(sep)].strip()
    return cut.strip()


def email_text_for_llm(body: str, max_chars: int = 0) -> str:
    text = html_to_text(body) if looks_like_html(body) else clean_text(body)
    if max_chars > 0:
        text = truncate_text(text, max_chars)
    return text
