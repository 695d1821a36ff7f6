#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT / "src"))

from jobmail.agents.registry import build_extractor, list_strategies
from jobmail.core.config import load_config
from jobmail.core.errors import ConfigError
from jobmail.core.logging import log_error, log_event, setup_logging
from jobmail.core.mime import load_emails
from jobmail.output.report import render_report, render_report_html, write_listings_json


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Extract job listings from exported job-alert emails")
    ap.add_argument("--config", default=str(ROOT / "config.yaml"), help="Path to config.yaml")
    ap.add_argument("--emails", required=True, help="JSON file with the fetched emails")
    ap.add_argument(
        "--strategy",
        choices=list_strategies(),
        default="",
        help="Override extraction.strategy from the config",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Write debug artifacts (markup / prompts); model strategy skips the API call",
    )
    ap.add_argument("--json", default="", help="Also write listings as JSON to this path")
    ap.add_argument("--html", default="", help="Also write an HTML report to this path")
    return ap.parse_args()


def _make_run_id(log_dir: str) -> str:
    base = datetime.now().strftime("%Y%m%d_%H%M%S")
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    candidate = base
    idx = 1
    while (Path(log_dir) / f"run_{candidate}.jsonl").exists():
        candidate = f"{base}_{idx:02d}"
        idx += 1
    return candidate


def main() -> int:
    args = parse_args()
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print(f"Failed to load config: {e}")
        return 2

    runtime = cfg.get("runtime", {})
    log_dir = runtime.get("log_dir", "logs")
    run_id = _make_run_id(log_dir)
    log_path = setup_logging(run_id, log_dir=log_dir, level=runtime.get("log_level", "INFO"))
    start_time = time.perf_counter()

    try:
        extractor = build_extractor(
            cfg,
            strategy=args.strategy,
            run_id=run_id,
            debug=True if args.debug else None,
        )
        emails = load_emails(args.emails)
        log_event("run_started", run_id=run_id, strategy=extractor.name, emails=len(emails))
        report = extractor.extract(emails)
    except ConfigError as e:
        log_error("config_invalid", run_id=run_id, error_type=type(e).__name__, error=str(e))
        print(f"Configuration error: {e}")
        return 2

    print(render_report(report, run_id=run_id, emails_total=len(emails)))

    if args.json:
        out = write_listings_json(report.listings, args.json)
        log_event("listings_written", run_id=run_id, path=str(out), count=len(report.listings))
    if args.html:
        out_html = Path(args.html)
        out_html.parent.mkdir(parents=True, exist_ok=True)
        out_html.write_text(
            render_report_html(report, run_id=run_id, emails_total=len(emails)),
            encoding="utf-8",
        )
        log_event("report_written", run_id=run_id, path=str(out_html))

    log_event(
        "run_summary",
        run_id=run_id,
        strategy=report.strategy,
        emails=len(emails),
        listings=len(report.listings),
        failures=len(report.failures),
        stats=report.stats,
        duration_sec=round(time.perf_counter() - start_time, 3),
        log_path=str(log_path),
    )
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
