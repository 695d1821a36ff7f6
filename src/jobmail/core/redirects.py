from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

import requests

from .http import HttpClient
from .logging import log_debug, log_warning
from .schema import RedirectOutcome

DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_MAX_CONCURRENT = 5


def _failure_reason(ex: Exception, timeout: float) -> str:
    if isinstance(ex, requests.Timeout):
        return f"timed out after {timeout:g}s"
    if isinstance(ex, requests.TooManyRedirects):
        return "too many redirects"
    if isinstance(ex, requests.ConnectionError):
        return f"connection failed: {str(ex)[:200]}"
    return f"{type(ex).__name__}: {str(ex)[:200]}"


class RedirectResolver:
    """Resolves tracking/redirect links to their final location with HEAD probes.

    Probes never raise: any failure yields an outcome whose final_url is the input URL.
    Batches run in fixed windows of `max_concurrent` so at most that many probes are in
    flight at once.
    """

    def __init__(
        self,
        http: Optional[HttpClient] = None,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    ) -> None:
        self.http = http or HttpClient(timeout_sec=timeout_sec, retries=0)
        self.timeout_sec = float(timeout_sec)
        self.max_concurrent = max(1, int(max_concurrent))

    def resolve(self, url: str, timeout: Optional[float] = None) -> RedirectOutcome:
        t = self.timeout_sec if timeout is None else float(timeout)
        try:
            resp = self.http.head(url, timeout=t)
        except Exception as ex:
            reason = _failure_reason(ex, t)
            log_warning("redirect_failed", url=url, error_type=type(ex).__name__, error=reason)
            return RedirectOutcome(
                original_url=url, final_url=url, succeeded=False, failure_reason=reason
            )

        status = int(getattr(resp, "status_code", 0) or 0)
        hops = len(getattr(resp, "history", None) or [])
        if status >= 400:
            reason = f"HTTP {status}"
            log_warning("redirect_failed", url=url, status=status, error=reason)
            return RedirectOutcome(
                original_url=url,
                final_url=url,
                succeeded=False,
                failure_reason=reason,
                status_code=status,
                hops=hops,
            )

        final_url = str(getattr(resp, "url", "") or url)
        if final_url != url:
            log_debug("redirect_resolved", url=url, final_url=final_url, hops=hops)
        return RedirectOutcome(
            original_url=url,
            final_url=final_url,
            succeeded=True,
            status_code=status or None,
            hops=hops,
        )

    def resolve_batch(
        self,
        urls: Iterable[str],
        max_concurrent: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, RedirectOutcome]:
        window = max(1, int(max_concurrent or self.max_concurrent))
        unique: List[str] = list(dict.fromkeys(urls))
        results: Dict[str, RedirectOutcome] = {}
        for start in range(0, len(unique), window):
            chunk = unique[start : start + window]
            with ThreadPoolExecutor(max_workers=len(chunk)) as pool:
                outcomes = list(pool.map(lambda u: self.resolve(u, timeout), chunk))
            for url, outcome in zip(chunk, outcomes):
                results[url] = outcome
        return results
