from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from jsonschema import ValidationError
from jsonschema import validate as js_validate

from .budget import Budget
from .errors import BudgetExceededError, ProviderError, ResponseFormatError
from .llm_providers.base import ProviderInterface
from .llm_providers.registry import get_provider
from .logging import log_event, log_warning
from .prompts import SYSTEM_PROMPT, build_prompt
from .schema import LISTING_ARRAY_SCHEMA, JobListing, RawEmail
from .utils import normalize_whitespace, preview, safe_int

# Field names a model may wrap the listing array in; all are treated like a bare array.
LISTING_KEYS = ("jobs", "listings", "job_listings", "jobListings", "results")

STRICT_PREFIX = "You must output JSON only, with no extra text.\n\n"


@dataclass
class BatchResult:
    listings: List[JobListing]
    dropped: int = 0
    provider: str = ""
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    raw_json: str = ""


def _extract_first_json_value(text: str) -> str:
    """Best-effort: pull the first JSON object/array out of markdown fences or prose."""
    if not text:
        return ""

    m = re.search(r"```(?:json)?\s*(.*?)\s*```", text, flags=re.IGNORECASE | re.DOTALL)
    if m:
        cand = (m.group(1) or "").strip()
        if cand[:1] in ("{", "["):
            return cand

    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return ""
    start = min(starts)
    opener = text[start]
    closer = "}" if opener == "{" else "]"

    # Bracket-balance scan with string/escape awareness.
    depth = 0
    in_str = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start : i + 1].strip()
    return ""


def _loads(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        extracted = _extract_first_json_value(content)
        if extracted:
            try:
                obj = json.loads(extracted)
            except json.JSONDecodeError:
                pass
            else:
                log_event(
                    "llm_json_extracted",
                    content_len=len(content),
                    extracted_len=len(extracted),
                    extracted_preview=preview(extracted),
                )
                return obj
        raise ResponseFormatError(f"response is not valid JSON: {exc}", raw=content) from exc


def _unwrap_listing_array(obj: Any, raw: str) -> List[Any]:
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        for key in LISTING_KEYS:
            if key in obj:
                value = obj[key]
                if isinstance(value, list):
                    return value
                if value is None:
                    return []
                raise ResponseFormatError(f"field {key!r} is not an array", raw=raw)
        raise ResponseFormatError(
            f"object has none of the listing fields {list(LISTING_KEYS)}", raw=raw
        )
    raise ResponseFormatError(f"unexpected JSON type {type(obj).__name__}", raw=raw)


def parse_listings(content: str) -> List[Dict[str, Any]]:
    """Parse a model answer into raw listing dicts.

    Accepts a bare array or an object wrapping the array under a known field. A valid empty
    array means the model found nothing; anything unparseable raises ResponseFormatError.
    """
    if not content or not content.strip():
        raise ResponseFormatError("empty model response", raw=content or "")
    obj = _loads(content.strip())
    items = _unwrap_listing_array(obj, content)
    try:
        js_validate(items, LISTING_ARRAY_SCHEMA)
    except ValidationError as exc:
        raise ResponseFormatError(f"listing schema error: {exc.message}", raw=content) from exc
    return items


def _source_email(item: Dict[str, Any], batch: Sequence[RawEmail]) -> Optional[RawEmail]:
    idx = safe_int(item.get("emailIndex"), 0)
    if 1 <= idx <= len(batch):
        return batch[idx - 1]
    subject = normalize_whitespace(str(item.get("emailSubject") or ""))
    if subject:
        for email in batch:
            if normalize_whitespace(email.subject) == subject:
                return email
    if len(batch) == 1:
        return batch[0]
    return None


def listings_from_items(
    items: Sequence[Dict[str, Any]], batch: Sequence[RawEmail]
) -> tuple[List[JobListing], int]:
    """Turn parsed dicts into JobListing records; entries without a title or link are dropped."""
    listings: List[JobListing] = []
    dropped = 0
    for pos, item in enumerate(items):
        title = normalize_whitespace(str(item.get("jobTitle") or ""))
        link = str(item.get("jobLink") or "").strip()
        if not title or not link:
            dropped += 1
            log_warning(
                "llm_listing_dropped",
                position=pos,
                reason="missing jobTitle" if not title else "missing jobLink",
                item_preview=preview(json.dumps(item, ensure_ascii=False), 200),
            )
            continue
        email = _source_email(item, batch)
        if email is not None:
            listings.append(JobListing.for_email(email, title=title, link=link))
        else:
            listings.append(
                JobListing(
                    email_from=str(item.get("emailFrom") or ""),
                    email_subject=str(item.get("emailSubject") or ""),
                    email_date=str(item.get("emailDate") or ""),
                    job_title=title,
                    job_link=link,
                )
            )
    return listings, dropped


class LLMClient:
    def __init__(
        self,
        cfg: Dict[str, Any],
        budget: Optional[Budget] = None,
        *,
        run_id: str = "",
        provider: Optional[ProviderInterface] = None,
    ) -> None:
        self.cfg = cfg
        self.budget = budget or Budget(max_calls=int(cfg.get("max_calls_per_run", 0) or 0))
        self.provider = (cfg.get("provider", "openai") or "openai").lower()
        self.model = cfg.get("model", "gpt-4o-mini")
        self.temperature = float(cfg.get("temperature", 0.3))
        self.timeout_sec = int(cfg.get("timeout_sec", 120))
        self.max_chars_per_email = int(cfg.get("max_input_chars_per_email", 0) or 0)
        self.fallback_providers = list(cfg.get("fallback_providers") or [])
        self.provider_options = cfg.get("provider_options", {}) or {}
        self.retry_on_invalid_json = bool(cfg.get("retry_on_invalid_json", True))
        self.run_id = run_id
        self._injected = provider
        self.usage: Dict[str, int] = {
            "calls": 0,
            "input_tokens": 0,
            "output_tokens": 0,
            "total_tokens": 0,
        }

    def _provider_chain(self) -> List[str]:
        chain = [self.provider] + [
            p.lower() for p in self.fallback_providers if p and p.lower() != self.provider
        ]
        return chain

    def _options(self, provider_name: str) -> Dict[str, Any]:
        opts: Dict[str, Any] = {"api_key_env": self.cfg.get("api_key_env", "OPENAI_API_KEY")}
        if self.cfg.get("api_base"):
            opts["api_base"] = self.cfg["api_base"]
        extra = (
            self.provider_options.get(provider_name)
            if isinstance(self.provider_options, dict)
            else None
        )
        if isinstance(extra, dict):
            opts.update(extra)
        return opts

    def _resolve(self, provider_name: str) -> Optional[ProviderInterface]:
        if self._injected is not None and provider_name == self.provider:
            return self._injected
        return get_provider(provider_name)

    def ready(self) -> bool:
        for name in self._provider_chain():
            p = self._resolve(name)
            if p is not None and p.ready(self._options(name)):
                return True
        return False

    def render_prompt(self, batch: Sequence[RawEmail]) -> str:
        return build_prompt(batch, max_chars_per_email=self.max_chars_per_email)

    def _bump_usage(self, usage: Dict[str, int]) -> None:
        self.usage["calls"] += 1
        self.usage["input_tokens"] += int(usage.get("input", 0) or 0)
        self.usage["output_tokens"] += int(usage.get("output", 0) or 0)
        self.usage["total_tokens"] += int(usage.get("total", 0) or 0)

    def _call_and_parse(
        self,
        provider: ProviderInterface,
        provider_name: str,
        model: str,
        prompt: str,
        batch: Sequence[RawEmail],
        *,
        temperature: float,
    ) -> BatchResult:
        content, usage = provider.call_json(
            model=model,
            temperature=temperature,
            timeout_sec=self.timeout_sec,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=prompt,
            cfg=self._options(provider_name),
        )
        self._bump_usage(usage or {})
        log_event(
            "llm_batch_answered",
            run_id=self.run_id,
            provider=provider_name,
            model=model,
            emails=len(batch),
            content_len=len(content or ""),
            total_tokens=int((usage or {}).get("total", 0) or 0),
        )
        items = parse_listings(content)
        listings, dropped = listings_from_items(items, batch)
        return BatchResult(
            listings=listings,
            dropped=dropped,
            provider=provider_name,
            model=model,
            usage=usage or {},
            raw_json=content,
        )

    def call_batch(self, batch: Sequence[RawEmail]) -> BatchResult:
        if not self.budget.can_call():
            raise BudgetExceededError(
                f"model call budget exhausted ({self.budget.calls_used}/{self.budget.max_calls})"
            )
        self.budget.consume_call(1)
        prompt = self.render_prompt(batch)

        last_exc: Optional[Exception] = None
        any_ready = False
        for provider_name in self._provider_chain():
            provider = self._resolve(provider_name)
            if provider is None or not provider.ready(self._options(provider_name)):
                continue
            any_ready = True
            model = str(self._options(provider_name).get("model", self.model))
            try:
                return self._call_and_parse(
                    provider, provider_name, model, prompt, batch, temperature=self.temperature
                )
            except ResponseFormatError as exc:
                last_exc = exc
                log_warning(
                    "llm_response_invalid",
                    run_id=self.run_id,
                    provider=provider_name,
                    model=model,
                    error=str(exc)[:200],
                    content_preview=preview(exc.raw),
                )
                if not self.retry_on_invalid_json:
                    continue
                try:
                    return self._call_and_parse(
                        provider,
                        provider_name,
                        model,
                        STRICT_PREFIX + prompt,
                        batch,
                        temperature=0.0,
                    )
                except Exception as retry_exc:
                    last_exc = retry_exc
                    log_warning(
                        "llm_provider_failed",
                        run_id=self.run_id,
                        provider=provider_name,
                        model=model,
                        error_type=type(retry_exc).__name__,
                        error=str(retry_exc)[:300],
                    )
            except Exception as exc:
                last_exc = exc
                log_warning(
                    "llm_provider_failed",
                    run_id=self.run_id,
                    provider=provider_name,
                    model=model,
                    error_type=type(exc).__name__,
                    error=str(exc)[:300],
                )

        if not any_ready:
            raise ProviderError(f"no model provider is ready (tried {self._provider_chain()})")
        if isinstance(last_exc, ResponseFormatError):
            raise last_exc
        raise ProviderError(f"all model providers failed: {last_exc!r}") from last_exc

    def extract_batch(self, batch: Sequence[RawEmail]) -> List[JobListing]:
        return self.call_batch(batch).listings
