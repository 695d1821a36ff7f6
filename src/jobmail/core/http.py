from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

CHROME_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class HttpClient:
    user_agent: str = CHROME_USER_AGENT
    timeout_sec: float = 10.0
    retries: int = 0
    pool_size: int = 10

    _browser_headers = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
    }

    def __post_init__(self) -> None:
        self.session = requests.Session()
        retry = Retry(
            total=self.retries,
            read=self.retries,
            connect=self.retries,
            backoff_factor=0.8,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET", "HEAD"),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(
            max_retries=retry, pool_connections=self.pool_size, pool_maxsize=self.pool_size
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _headers(self, headers: Optional[dict]) -> dict:
        h = {"User-Agent": self.user_agent, **self._browser_headers}
        if headers:
            h.update(headers)
        return h

    def head(
        self, url: str, *, timeout: Optional[float] = None, headers: Optional[dict] = None
    ) -> requests.Response:
        """HEAD request following the redirect chain; no body is downloaded.

        `timeout` bounds the whole chain, measured from issuance. Each hop gets only the
        time left, and a response arriving after the deadline raises `requests.Timeout`.
        """
        limit = float(self.timeout_sec if timeout is None else timeout)
        deadline = time.monotonic() + limit

        def _check_deadline(resp: requests.Response, *args, **kwargs) -> None:
            if time.monotonic() > deadline:
                resp.close()
                raise requests.Timeout(f"redirect chain exceeded {limit:g}s at {resp.url}")

        hooks = {"response": _check_deadline}
        sent_headers = self._headers(headers)
        resp = self.session.head(
            url, headers=sent_headers, timeout=limit, allow_redirects=False, hooks=hooks
        )
        history: List[requests.Response] = []
        while True:
            target = self.session.get_redirect_target(resp)
            if not target:
                break
            history.append(resp)
            if len(history) > self.session.max_redirects:
                resp.close()
                raise requests.TooManyRedirects(
                    f"exceeded {self.session.max_redirects} redirects", response=resp
                )
            remaining = max(0.001, deadline - time.monotonic())
            resp = self.session.head(
                urljoin(resp.url, target),
                headers=sent_headers,
                timeout=remaining,
                allow_redirects=False,
                hooks=hooks,
            )
        resp.history = history
        return resp
