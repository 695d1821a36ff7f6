from __future__ import annotations

import os
from typing import Any, Dict, Tuple

from ..logging import log_warning
from .base import ProviderInterface

# Reasoning models reject a custom temperature.
FIXED_TEMPERATURE_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def _usage_dict(resp: Any) -> Dict[str, int]:
    u = getattr(resp, "usage", None)
    if not u:
        return {}

    def _get(name: str) -> int:
        v = getattr(u, name, None)
        if v is None and isinstance(u, dict):
            v = u.get(name)
        return int(v or 0)

    return {
        "input": _get("prompt_tokens"),
        "output": _get("completion_tokens"),
        "total": _get("total_tokens"),
    }


class OpenAIProvider(ProviderInterface):
    name = "openai"

    def ready(self, cfg: Dict[str, Any]) -> bool:
        env_key = cfg.get("api_key_env", "OPENAI_API_KEY")
        return bool(os.getenv(env_key))

    def call_json(
        self,
        *,
        model: str,
        temperature: float,
        timeout_sec: int,
        system_prompt: str,
        user_prompt: str,
        cfg: Dict[str, Any],
    ) -> Tuple[str, Dict[str, int]]:
        from openai import OpenAI

        api_key = os.getenv(cfg.get("api_key_env", "OPENAI_API_KEY"), "")
        api_base = cfg.get("api_base") or None
        client = OpenAI(api_key=api_key, base_url=api_base) if api_base else OpenAI(api_key=api_key)

        kwargs: Dict[str, Any] = dict(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            timeout=timeout_sec,
        )
        if not model.lower().startswith(FIXED_TEMPERATURE_PREFIXES):
            kwargs["temperature"] = temperature

        response_format = cfg.get("response_format", "json_object")
        use_response_format = bool(cfg.get("use_response_format", True))
        if use_response_format and response_format:
            try:
                resp = client.chat.completions.create(
                    **kwargs, response_format={"type": response_format}
                )
            except Exception as ex:
                # Some compatible endpoints reject response_format; retry once without it.
                log_warning(
                    "llm_response_format_rejected",
                    provider=self.name,
                    model=model,
                    error_type=type(ex).__name__,
                    error=str(ex)[:200],
                )
                resp = client.chat.completions.create(**kwargs)
        else:
            resp = client.chat.completions.create(**kwargs)

        content = resp.choices[0].message.content or ""
        return content.strip(), _usage_dict(resp)
