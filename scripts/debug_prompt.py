#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Ensure imports work when running from repo root
ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from jobmail.core.budget import estimate_prompt_tokens, plan_batch_size, plan_batches
from jobmail.core.config import load_config
from jobmail.core.mime import load_emails
from jobmail.core.prompts import build_prompt
from jobmail.core.tokens import TokenEstimator


def main() -> int:
    ap = argparse.ArgumentParser(description="Show the batch plan and rendered prompt, offline")
    ap.add_argument("--emails", required=True)
    ap.add_argument("--config", default=str(ROOT / "config.yaml"))
    ap.add_argument("--batch", type=int, default=1, help="1-based batch to render")
    ap.add_argument("--model", default="", help="Override llm.model")
    ap.add_argument("--print-prompt", action="store_true")
    args = ap.parse_args()

    cfg = load_config(args.config)
    llm_cfg = cfg.get("llm", {})
    model = args.model or llm_cfg.get("model", "gpt-4o-mini")
    max_chars = int(llm_cfg.get("max_input_chars_per_email", 0) or 0)
    emails = load_emails(args.emails)
    estimator = TokenEstimator()

    size = plan_batch_size(
        emails,
        model,
        int(llm_cfg.get("max_batch_size", 20)),
        estimator=estimator,
        reserved_tokens=int(llm_cfg.get("reserved_tokens", 10_000)),
        max_chars_per_email=max_chars,
    )
    batches = plan_batches(emails, size)
    if not batches:
        print("No emails to plan.")
        return 0
    idx = min(max(args.batch, 1), len(batches)) - 1
    prompt = build_prompt(batches[idx], max_chars_per_email=max_chars)

    if args.print_prompt:
        print("\n--- PROMPT ---\n")
        print(prompt)
        print("\n--- END ---\n")

    print(
        json.dumps(
            {
                "model": model,
                "emails": len(emails),
                "batch_size": size,
                "batches": len(batches),
                "rendered_batch": idx + 1,
                "rendered_emails": len(batches[idx]),
                "prompt_chars": len(prompt),
                **estimate_prompt_tokens(prompt, model, estimator),
            },
            ensure_ascii=False,
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
