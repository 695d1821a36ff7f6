from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from .utils import normalize_whitespace


@dataclass(frozen=True)
class RawEmail:
    sender: str
    subject: str
    date: str  # display only, never parsed
    body: str

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RawEmail":
        return cls(
            sender=str(d.get("sender") or d.get("from") or ""),
            subject=str(d.get("subject") or ""),
            date=str(d.get("date") or ""),
            body=str(d.get("body") or d.get("htmlContent") or d.get("html") or ""),
        )


@dataclass(frozen=True)
class SourcePolicy:
    sender_match: str
    link_patterns: Tuple[str, ...]
    follow_redirects: bool
    link_selector: str
    text_exclusions: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        *,
        sender_match: str,
        link_patterns: Iterable[str],
        link_selector: str,
        follow_redirects: bool = False,
        text_exclusions: Iterable[str] = (),
    ) -> "SourcePolicy":
        return cls(
            sender_match=sender_match.strip(),
            link_patterns=tuple(dict.fromkeys(p for p in link_patterns if p)),
            follow_redirects=bool(follow_redirects),
            link_selector=link_selector,
            text_exclusions=frozenset(e.lower() for e in text_exclusions if e),
        )

    def applies_to(self, email: RawEmail) -> bool:
        if not self.sender_match:
            return False
        return self.sender_match.lower() in (email.sender or "").lower()


@dataclass(frozen=True)
class CandidateLink:
    url: str
    anchor_text: str


@dataclass(frozen=True)
class RedirectOutcome:
    original_url: str
    final_url: str
    succeeded: bool
    failure_reason: Optional[str] = None
    status_code: Optional[int] = None
    hops: int = 0


@dataclass(frozen=True)
class JobListing:
    email_from: str
    email_subject: str
    email_date: str
    job_title: str
    job_link: str

    @classmethod
    def for_email(cls, email: RawEmail, *, title: str, link: str) -> "JobListing":
        return cls(
            email_from=email.sender,
            email_subject=email.subject,
            email_date=email.date,
            job_title=normalize_whitespace(title),
            job_link=link.strip(),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "emailFrom": self.email_from,
            "emailSubject": self.email_subject,
            "emailDate": self.email_date,
            "jobTitle": self.job_title,
            "jobLink": self.job_link,
        }


@dataclass(frozen=True)
class TokenBudget:
    model_context_limit: int
    reserved_tokens: int
    max_batch_size: int

    def __post_init__(self) -> None:
        if self.reserved_tokens >= self.model_context_limit:
            raise ValueError(
                f"reserved_tokens ({self.reserved_tokens}) must be below "
                f"model_context_limit ({self.model_context_limit})"
            )
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")

    @property
    def available_tokens(self) -> int:
        return self.model_context_limit - self.reserved_tokens


LISTING_ITEM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "emailIndex": {"type": ["integer", "string", "null"]},
        "emailFrom": {"type": ["string", "null"]},
        "emailSubject": {"type": ["string", "null"]},
        "emailDate": {"type": ["string", "null"]},
        "jobTitle": {"type": ["string", "null"]},
        "jobLink": {"type": ["string", "null"]},
    },
}

LISTING_ARRAY_SCHEMA: Dict[str, Any] = {"type": "array", "items": LISTING_ITEM_SCHEMA}
