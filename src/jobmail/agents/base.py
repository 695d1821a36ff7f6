from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Sequence

from ..core.schema import JobListing, RawEmail


@dataclass
class Failure:
    scope: str  # email | batch
    index: int  # position of the (first) email in the run's input, 0-based
    size: int
    subject: str
    stage: str  # links | redirects | llm | budget
    error_type: str
    error: str
    raw_excerpt: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "index": self.index,
            "size": self.size,
            "subject": self.subject,
            "stage": self.stage,
            "error_type": self.error_type,
            "error": self.error,
            "raw_excerpt": self.raw_excerpt,
        }


@dataclass
class ExtractionReport:
    strategy: str
    listings: List[JobListing] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def bump(self, key: str, n: int = 1) -> None:
        self.stats[key] = int(self.stats.get(key, 0)) + n


class ListingExtractor(Protocol):
    name: str

    def extract(self, emails: Sequence[RawEmail]) -> ExtractionReport: ...
