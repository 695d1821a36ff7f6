from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import ConfigError
from .schema import RawEmail

PREFERRED_BODY_TYPES = ("text/html", "text/plain")


@dataclass(frozen=True)
class LeafPart:
    mime_type: str
    data: str


@dataclass(frozen=True)
class MultiPart:
    mime_type: str
    parts: Tuple["MessagePart", ...]


MessagePart = Union[LeafPart, MultiPart]


def decode_b64url(data: str) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def part_from_payload(payload: Dict[str, Any]) -> MessagePart:
    """Build the part tree from a Gmail-API-shaped payload (mimeType, body.data, parts)."""
    mime_type = str(payload.get("mimeType") or "").lower()
    children = payload.get("parts") or []
    if children:
        return MultiPart(mime_type, tuple(part_from_payload(c) for c in children))
    body = payload.get("body") or {}
    return LeafPart(mime_type, decode_b64url(str(body.get("data") or "")))


def iter_leaves(part: MessagePart) -> Iterator[LeafPart]:
    if isinstance(part, LeafPart):
        yield part
        return
    for child in part.parts:
        yield from iter_leaves(child)


def find_body(part: MessagePart, preferred: Sequence[str] = PREFERRED_BODY_TYPES) -> str:
    """First non-empty leaf of the most preferred type (html before plain text)."""
    found: Dict[str, str] = {}
    for leaf in iter_leaves(part):
        if leaf.mime_type in preferred and leaf.data and leaf.mime_type not in found:
            found[leaf.mime_type] = leaf.data
    for mime_type in preferred:
        if mime_type in found:
            return found[mime_type]
    return ""


def header_value(headers: Iterable[Dict[str, Any]], name: str, default: str = "") -> str:
    wanted = name.lower()
    for h in headers or []:
        if str(h.get("name") or "").lower() == wanted:
            return str(h.get("value") or default)
    return default


def raw_email_from_message(message: Dict[str, Any]) -> RawEmail:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    return RawEmail(
        sender=header_value(headers, "From", "(Unknown)"),
        subject=header_value(headers, "Subject", "(No Subject)"),
        date=header_value(headers, "Date", "(No Date)"),
        body=find_body(part_from_payload(payload)),
    )


def load_emails(path: str | Path) -> List[RawEmail]:
    """Read a JSON export: a list of RawEmail-shaped objects or Gmail message resources."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Email file not found: {p.resolve()}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Email file is not valid JSON: {p}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("emails") or data.get("messages") or []
    if not isinstance(data, list):
        raise ConfigError(f"Email file must hold a list of messages: {p}")

    emails: List[RawEmail] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        if "payload" in item:
            emails.append(raw_email_from_message(item))
        else:
            emails.append(RawEmail.from_dict(item))
    return emails


def build_sender_query(senders: Iterable[str], mailbox: Optional[str] = "inbox") -> str:
    """Mailbox search query for the fetcher, e.g. `in:inbox AND (from:a OR from:b)`."""
    sender_query = " OR ".join(f"from:{s}" for s in senders if s)
    if not mailbox:
        return f"({sender_query})"
    return f"in:{mailbox} AND ({sender_query})"
