from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from .errors import ConfigError
from .links import validate_selector
from .schema import SourcePolicy

STRATEGIES = ("structural", "model")
DEFAULT_LINK_SELECTOR = "//a[@href]"

# snake_case key -> camelCase alias accepted in source entries
_SOURCE_ALIASES = {
    "email_sender": "emailSender",
    "job_link_patterns": "jobLinkPatterns",
    "follow_job_link": "followJobLink",
    "link_selector": "linkSelector",
    "link_text_exclusions": "linkTextExclusions",
}


def _require(d: Dict[str, Any], key: str, path: str) -> Any:
    if key not in d:
        raise ConfigError(f"Missing required config: {path}.{key}")
    return d[key]


def _source_value(src: Dict[str, Any], key: str, default: Any = None) -> Any:
    if key in src:
        return src[key]
    return src.get(_SOURCE_ALIASES[key], default)


def load_config(path: str | Path = "config.yaml") -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(
            f"Config file not found: {p.resolve()}\n\nTip: copy config.example.yaml -> config.yaml"
        )
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {p}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {p}")
    validate_config(data)
    return data


def validate_config(cfg: Dict[str, Any]) -> None:
    cfg.setdefault("extraction", {})
    cfg["extraction"].setdefault("strategy", "structural")
    strategy = str(cfg["extraction"]["strategy"]).lower()
    if strategy not in STRATEGIES:
        raise ConfigError(f"extraction.strategy must be one of {STRATEGIES}, got {strategy!r}")
    cfg["extraction"]["strategy"] = strategy

    cfg.setdefault("sources", [])
    if not isinstance(cfg["sources"], list):
        raise ConfigError("sources must be a list")
    if strategy == "structural" and not cfg["sources"]:
        raise ConfigError("Missing required config: .sources (structural strategy)")
    for i, src in enumerate(cfg["sources"]):
        path = f"sources[{i}]"
        if not isinstance(src, dict):
            raise ConfigError(f"{path} must be a mapping")
        if _source_value(src, "email_sender") is None:
            _require(src, "email_sender", path)
        patterns = _source_value(src, "job_link_patterns")
        if not patterns or not isinstance(patterns, list):
            raise ConfigError(f"{path}.job_link_patterns must be a non-empty list")

    cfg.setdefault("redirects", {})
    cfg["redirects"].setdefault("max_concurrent", 5)
    cfg["redirects"].setdefault("timeout_sec", 10)
    if int(cfg["redirects"]["max_concurrent"]) < 1:
        raise ConfigError("redirects.max_concurrent must be >= 1")

    cfg.setdefault("llm", {})
    cfg["llm"].setdefault("provider", "openai")
    cfg["llm"].setdefault("model", "gpt-4o-mini")
    cfg["llm"].setdefault("api_key_env", "OPENAI_API_KEY")
    cfg["llm"].setdefault("temperature", 0.3)
    cfg["llm"].setdefault("timeout_sec", 120)
    cfg["llm"].setdefault("max_batch_size", 20)
    cfg["llm"].setdefault("reserved_tokens", 10_000)
    cfg["llm"].setdefault("request_delay_sec", 1.0)
    cfg["llm"].setdefault("max_input_chars_per_email", 20_000)
    cfg["llm"].setdefault("max_calls_per_run", 0)
    cfg["llm"].setdefault("retry_on_invalid_json", True)
    if int(cfg["llm"]["max_batch_size"]) < 1:
        raise ConfigError("llm.max_batch_size must be >= 1")
    if float(cfg["llm"]["request_delay_sec"]) < 0:
        raise ConfigError("llm.request_delay_sec must be >= 0")

    cfg.setdefault("debug", {})
    cfg["debug"].setdefault("enabled", False)
    cfg["debug"].setdefault("dir", "debug")

    cfg.setdefault("runtime", {})
    cfg["runtime"].setdefault("log_dir", "logs")
    cfg["runtime"].setdefault("log_level", "INFO")


def policies_from_config(cfg: Dict[str, Any]) -> List[SourcePolicy]:
    """Build one SourcePolicy per configured sender; invalid selectors raise SelectorError."""
    policies: List[SourcePolicy] = []
    for src in cfg.get("sources") or []:
        sender = str(_source_value(src, "email_sender") or "").strip()
        selector = str(_source_value(src, "link_selector") or DEFAULT_LINK_SELECTOR)
        validate_selector(selector, sender)
        policies.append(
            SourcePolicy.build(
                sender_match=sender,
                link_patterns=_source_value(src, "job_link_patterns") or [],
                follow_redirects=bool(_source_value(src, "follow_job_link", False)),
                link_selector=selector,
                text_exclusions=_source_value(src, "link_text_exclusions") or [],
            )
        )
    return policies
