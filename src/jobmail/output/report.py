from __future__ import annotations

import json
from itertools import groupby
from pathlib import Path
from typing import Any, Dict, List, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..agents.base import ExtractionReport
from ..core.schema import JobListing


def _jinja_env() -> Environment:
    template_dir = Path(__file__).parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(["html", "xml", "html.j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def group_by_email(listings: Sequence[JobListing]) -> List[Dict[str, Any]]:
    """Consecutive listings from the same email, in output order."""
    groups: List[Dict[str, Any]] = []
    key = lambda j: (j.email_from, j.email_subject, j.email_date)  # noqa: E731
    for (sender, subject, date), items in groupby(listings, key=key):
        groups.append({"sender": sender, "subject": subject, "date": date, "jobs": list(items)})
    return groups


def _context(report: ExtractionReport, *, run_id: str, emails_total: int) -> Dict[str, Any]:
    return {
        "run_id": run_id,
        "strategy": report.strategy,
        "emails_total": emails_total,
        "listings_total": len(report.listings),
        "groups": group_by_email(report.listings),
        "failures": [f.as_dict() for f in report.failures],
        "stats": report.stats,
    }


def render_report(report: ExtractionReport, *, run_id: str = "", emails_total: int = 0) -> str:
    ctx = _context(report, run_id=run_id, emails_total=emails_total)
    return _jinja_env().get_template("listings.txt.j2").render(**ctx)


def render_report_html(
    report: ExtractionReport, *, run_id: str = "", emails_total: int = 0
) -> str:
    ctx = _context(report, run_id=run_id, emails_total=emails_total)
    return _jinja_env().get_template("listings.html.j2").render(**ctx)


def write_listings_json(listings: Sequence[JobListing], path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(
        json.dumps([j.to_dict() for j in listings], ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return p
