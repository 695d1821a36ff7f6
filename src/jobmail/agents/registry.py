from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..core.config import policies_from_config
from ..core.debug import DebugArtifacts
from ..core.errors import ConfigError
from ..core.http import HttpClient
from ..core.llm import LLMClient
from ..core.llm_providers.base import ProviderInterface
from ..core.redirects import RedirectResolver
from .base import ListingExtractor
from .model_assisted import ModelAssistedExtractor
from .structural import StructuralExtractor


def _debug_artifacts(cfg: Dict[str, Any], enabled: Optional[bool]) -> Optional[DebugArtifacts]:
    debug_cfg = cfg.get("debug", {}) or {}
    on = bool(debug_cfg.get("enabled", False)) if enabled is None else enabled
    if not on:
        return None
    return DebugArtifacts(root=Path(debug_cfg.get("dir", "debug")))


def _build_structural(
    cfg: Dict[str, Any],
    *,
    run_id: str,
    debug: Optional[DebugArtifacts],
    http: Optional[HttpClient],
    **_: Any,
) -> StructuralExtractor:
    policies = policies_from_config(cfg)
    if not policies:
        raise ConfigError("Structural extraction needs at least one entry under sources")
    redirects_cfg = cfg.get("redirects", {}) or {}
    timeout_sec = float(redirects_cfg.get("timeout_sec", 10))
    max_concurrent = int(redirects_cfg.get("max_concurrent", 5))
    resolver = RedirectResolver(
        http or HttpClient(timeout_sec=timeout_sec, retries=0, pool_size=max_concurrent),
        timeout_sec=timeout_sec,
        max_concurrent=max_concurrent,
    )
    return StructuralExtractor(
        policies,
        resolver,
        max_concurrent=max_concurrent,
        timeout_sec=timeout_sec,
        debug=debug,
        run_id=run_id,
    )


def _build_model(
    cfg: Dict[str, Any],
    *,
    run_id: str,
    debug: Optional[DebugArtifacts],
    provider: Optional[ProviderInterface] = None,
    sleep: Callable[[float], None] = time.sleep,
    **_: Any,
) -> ModelAssistedExtractor:
    llm_cfg = cfg.get("llm", {}) or {}
    llm = LLMClient(llm_cfg, run_id=run_id, provider=provider)
    # Debug mode never calls the model, so it runs without credentials.
    if debug is None and not llm.ready():
        raise ConfigError(
            f"No ready model provider for {llm.provider!r}: "
            f"set the {llm_cfg.get('api_key_env', 'OPENAI_API_KEY')} environment variable"
        )
    return ModelAssistedExtractor(
        llm,
        max_batch_size=int(llm_cfg.get("max_batch_size", 20)),
        reserved_tokens=int(llm_cfg.get("reserved_tokens", 10_000)),
        request_delay_sec=float(llm_cfg.get("request_delay_sec", 1.0)),
        debug=debug,
        sleep=sleep,
        run_id=run_id,
    )


_BUILDERS: Dict[str, Callable[..., ListingExtractor]] = {
    "structural": _build_structural,
    "model": _build_model,
}


def list_strategies() -> list[str]:
    return sorted(_BUILDERS.keys())


def build_extractor(
    cfg: Dict[str, Any],
    *,
    strategy: str = "",
    run_id: str = "",
    debug: Optional[bool] = None,
    http: Optional[HttpClient] = None,
    provider: Optional[ProviderInterface] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ListingExtractor:
    """Pick the extraction strategy from config (or an explicit override) and wire it up.

    Configuration problems surface here, before any email is read: unknown strategy,
    invalid XPath selectors, missing model credentials.
    """
    name = (strategy or cfg.get("extraction", {}).get("strategy") or "structural").lower()
    builder = _BUILDERS.get(name)
    if builder is None:
        raise ConfigError(
            f"Unknown extraction strategy {name!r}; expected one of {list_strategies()}"
        )
    return builder(
        cfg,
        run_id=run_id,
        debug=_debug_artifacts(cfg, debug),
        http=http,
        provider=provider,
        sleep=sleep,
    )
