from __future__ import annotations

import time
from typing import Callable, Mapping, Optional, Sequence

from ..core.budget import (
    DEFAULT_RESERVED_TOKENS,
    MODEL_CONTEXT_LIMITS,
    estimate_prompt_tokens,
    plan_batch_size,
    plan_batches,
)
from ..core.debug import DebugArtifacts
from ..core.errors import BudgetExceededError, ResponseFormatError
from ..core.llm import LLMClient
from ..core.logging import log_error, log_event
from ..core.schema import RawEmail
from ..core.tokens import TokenEstimator
from ..core.utils import preview
from .base import ExtractionReport, Failure


class ModelAssistedExtractor:
    """Sends emails to the model in token-budgeted batches, one request at a time."""

    name = "model"

    def __init__(
        self,
        llm: LLMClient,
        *,
        estimator: Optional[TokenEstimator] = None,
        max_batch_size: int = 20,
        reserved_tokens: int = DEFAULT_RESERVED_TOKENS,
        request_delay_sec: float = 1.0,
        limits: Mapping[str, int] = MODEL_CONTEXT_LIMITS,
        debug: Optional[DebugArtifacts] = None,
        sleep: Callable[[float], None] = time.sleep,
        run_id: str = "",
    ) -> None:
        self.llm = llm
        self.estimator = estimator or TokenEstimator()
        self.max_batch_size = max(1, int(max_batch_size))
        self.reserved_tokens = int(reserved_tokens)
        self.request_delay_sec = max(0.0, float(request_delay_sec))
        self.limits = limits
        self.debug = debug
        self._sleep = sleep
        self.run_id = run_id

    def _failure(
        self, start: int, batch: Sequence[RawEmail], stage: str, ex: Exception, raw: str = ""
    ) -> Failure:
        return Failure(
            scope="batch",
            index=start,
            size=len(batch),
            subject=batch[0].subject if batch else "",
            stage=stage,
            error_type=type(ex).__name__,
            error=str(ex)[:300],
            raw_excerpt=preview(raw, 500),
        )

    def _skip_remaining(
        self,
        report: ExtractionReport,
        batches: Sequence[Sequence[RawEmail]],
        n: int,
        batch_start: int,
    ) -> None:
        ex = BudgetExceededError(
            f"model call budget exhausted ({self.llm.budget.calls_used}"
            f"/{self.llm.budget.max_calls})"
        )
        for skipped_start, skipped in _remaining(batches, n, batch_start):
            report.failures.append(self._failure(skipped_start, skipped, "budget", ex))
        log_error(
            "llm_budget_exhausted",
            run_id=self.run_id,
            batches_skipped=len(batches) - n,
            error=str(ex),
        )

    def _write_debug_prompt(self, batch: Sequence[RawEmail], report: ExtractionReport) -> None:
        prompt = self.llm.render_prompt(batch)
        path = self.debug.write_prompt(batch[0].subject, prompt)
        log_event(
            "llm_prompt_debug",
            run_id=self.run_id,
            emails=len(batch),
            prompt_path=str(path),
            **estimate_prompt_tokens(prompt, self.llm.model, self.estimator, self.limits),
        )
        report.bump("batches_skipped_debug")

    def extract(self, emails: Sequence[RawEmail]) -> ExtractionReport:
        report = ExtractionReport(strategy=self.name)
        if not emails:
            report.stats["listings"] = 0
            return report

        size = plan_batch_size(
            emails,
            self.llm.model,
            self.max_batch_size,
            estimator=self.estimator,
            limits=self.limits,
            reserved_tokens=self.reserved_tokens,
            max_chars_per_email=self.llm.max_chars_per_email,
        )
        batches = plan_batches(emails, size)
        report.stats.update({"batch_size": size, "batches": len(batches)})

        requests_sent = 0
        start = 0
        for n, batch in enumerate(batches):
            batch_start = start
            start += len(batch)

            if self.debug is not None:
                self._write_debug_prompt(batch, report)
                continue

            if not self.llm.budget.can_call():
                self._skip_remaining(report, batches, n, batch_start)
                break
            if requests_sent > 0 and self.request_delay_sec > 0:
                self._sleep(self.request_delay_sec)
            requests_sent += 1

            log_event(
                "llm_batch_started",
                run_id=self.run_id,
                batch=n + 1,
                batches=len(batches),
                emails=len(batch),
            )
            try:
                result = self.llm.call_batch(batch)
            except BudgetExceededError:
                self._skip_remaining(report, batches, n, batch_start)
                break
            except ResponseFormatError as ex:
                report.failures.append(self._failure(batch_start, batch, "llm", ex, ex.raw))
                log_error(
                    "llm_batch_invalid_response",
                    run_id=self.run_id,
                    batch=n + 1,
                    error=str(ex)[:300],
                    content_preview=preview(ex.raw),
                )
                continue
            except Exception as ex:
                report.failures.append(self._failure(batch_start, batch, "llm", ex))
                log_error(
                    "llm_batch_failed",
                    run_id=self.run_id,
                    batch=n + 1,
                    error_type=type(ex).__name__,
                    error=str(ex)[:300],
                )
                continue

            report.listings.extend(result.listings)
            report.bump("listings_dropped", result.dropped)
            log_event(
                "llm_batch_done",
                run_id=self.run_id,
                batch=n + 1,
                listings=len(result.listings),
                dropped=result.dropped,
            )

        report.stats["requests"] = requests_sent
        report.stats["listings"] = len(report.listings)
        report.stats["llm_usage"] = dict(self.llm.usage)
        return report


def _remaining(batches, n: int, batch_start: int):
    start = batch_start
    for batch in batches[n:]:
        yield start, batch
        start += len(batch)
