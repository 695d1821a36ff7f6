from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..core.debug import DebugArtifacts
from ..core.errors import SelectorError
from ..core.links import extract_links_with_stats
from ..core.logging import log_error, log_event
from ..core.redirects import RedirectResolver
from ..core.schema import JobListing, RawEmail, RedirectOutcome, SourcePolicy
from ..core.utils import preview
from .base import ExtractionReport, Failure


class StructuralExtractor:
    """XPath link selection + text/pattern filters + redirect resolution, one email at a time."""

    name = "structural"

    def __init__(
        self,
        policies: Sequence[SourcePolicy],
        resolver: RedirectResolver,
        *,
        max_concurrent: int = 5,
        timeout_sec: float = 10.0,
        debug: Optional[DebugArtifacts] = None,
        run_id: str = "",
    ) -> None:
        self.policies = list(policies)
        self.resolver = resolver
        self.max_concurrent = max(1, int(max_concurrent))
        self.timeout_sec = float(timeout_sec)
        self.debug = debug
        self.run_id = run_id

    def policy_for(self, email: RawEmail) -> Optional[SourcePolicy]:
        for policy in self.policies:
            if policy.applies_to(email):
                return policy
        return None

    def extract_email(
        self, email: RawEmail, report: Optional[ExtractionReport] = None
    ) -> List[JobListing]:
        report = report if report is not None else ExtractionReport(strategy=self.name)
        policy = self.policy_for(email)
        if policy is None:
            report.bump("emails_without_policy")
            log_event("email_skipped_no_policy", run_id=self.run_id, sender=email.sender)
            return []

        links, stats, normalized = extract_links_with_stats(email.body, policy)
        report.bump("links_matched_nodes", stats.matched_nodes)
        report.bump("links_excluded_by_text", stats.excluded_by_text)
        report.bump("links_excluded_by_pattern", stats.excluded_by_pattern)
        report.bump("links_accepted", stats.accepted)

        if self.debug is not None:
            path = self.debug.write_markup(email.subject, normalized)
            log_event(
                "email_links_debug",
                run_id=self.run_id,
                sender=email.sender,
                subject=email.subject,
                selector=policy.link_selector,
                markup_path=str(path),
                excluded_by_text_samples=stats.excluded_samples,
                pattern_mismatch_samples=stats.mismatch_samples,
                **stats.as_dict(),
            )

        outcomes: Dict[str, RedirectOutcome] = {}
        if policy.follow_redirects and links:
            outcomes = self.resolver.resolve_batch(
                [link.url for link in links],
                max_concurrent=self.max_concurrent,
                timeout=self.timeout_sec,
            )
            report.bump("redirects_attempted", len(outcomes))
            report.bump("redirects_failed", sum(1 for o in outcomes.values() if not o.succeeded))

        listings: List[JobListing] = []
        for link in links:
            outcome = outcomes.get(link.url)
            final_url = outcome.final_url if outcome is not None else link.url
            listings.append(JobListing.for_email(email, title=link.anchor_text, link=final_url))
        return listings

    def extract(self, emails: Sequence[RawEmail]) -> ExtractionReport:
        report = ExtractionReport(strategy=self.name)
        for idx, email in enumerate(emails):
            report.bump("emails_processed")
            try:
                found = self.extract_email(email, report)
            except SelectorError:
                raise
            except Exception as ex:
                report.failures.append(
                    Failure(
                        scope="email",
                        index=idx,
                        size=1,
                        subject=email.subject,
                        stage="links",
                        error_type=type(ex).__name__,
                        error=str(ex)[:300],
                    )
                )
                log_error(
                    "email_extraction_failed",
                    run_id=self.run_id,
                    sender=email.sender,
                    subject=preview(email.subject, 120),
                    error=repr(ex),
                )
                continue
            report.listings.extend(found)
            log_event(
                "email_extracted",
                run_id=self.run_id,
                sender=email.sender,
                subject=preview(email.subject, 120),
                listings=len(found),
            )
        report.stats["listings"] = len(report.listings)
        return report
