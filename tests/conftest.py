from __future__ import annotations

import json
import threading
import time
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from jobmail.core.schema import RawEmail


class FakeHttp:
    """Stands in for HttpClient: `redirects` maps url -> final url, `errors` url -> exception."""

    def __init__(
        self,
        redirects: Optional[Dict[str, str]] = None,
        *,
        statuses: Optional[Dict[str, int]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        delay: float = 0.0,
    ) -> None:
        self.redirects = redirects or {}
        self.statuses = statuses or {}
        self.errors = errors or {}
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def head(self, url: str, *, timeout: Optional[float] = None, headers=None):
        with self._lock:
            self.calls.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if url in self.errors:
                raise self.errors[url]
            final = self.redirects.get(url, url)
            history = [SimpleNamespace(url=url)] if final != url else []
            return SimpleNamespace(
                status_code=self.statuses.get(url, 200), url=final, history=history
            )
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeEstimator:
    """Email blocks cost `per_email` tokens, everything else (the wrapper) costs `overhead`."""

    def __init__(self, per_email: int = 1000, overhead: int = 5000) -> None:
        self.per_email = per_email
        self.overhead = overhead

    def estimate(self, text: str, model: str) -> int:
        return self.per_email if text.startswith("=== EMAIL") else self.overhead


class FakeProvider:
    name = "fake"

    def __init__(self, responses: Optional[List[Any]] = None, ready: bool = True) -> None:
        self.responses = list(responses or [])
        self._ready = ready
        self.calls: List[Dict[str, Any]] = []

    def ready(self, cfg: Dict[str, Any]) -> bool:
        return self._ready

    def call_json(self, **kwargs: Any) -> Tuple[str, Dict[str, int]]:
        self.calls.append(kwargs)
        if not self.responses:
            raise AssertionError("unexpected model call")
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        content = resp if isinstance(resp, str) else json.dumps(resp)
        return content, {"input": 100, "output": 20, "total": 120}


@pytest.fixture
def make_email():
    def _make(
        sender: str = "alerts@jobs.example.com",
        subject: str = "New jobs for you",
        date: str = "Mon, 6 Jan 2025 09:00:00 +0000",
        body: str = "",
    ) -> RawEmail:
        return RawEmail(sender=sender, subject=subject, date=date, body=body)

    return _make
