from __future__ import annotations

from typing import Sequence

from .schema import RawEmail
from .text_cleaner import email_text_for_llm

SYSTEM_PROMPT = (
    "You are a helpful assistant that extracts job listings from emails. "
    "Output JSON only, with no extra text."
)

EMAIL_BLOCK = """=== EMAIL {index} ===
From: {sender}
Subject: {subject}
Date: {date}

{body}

=== END EMAIL {index} ===
"""

PROMPT_TEMPLATE = """You are analyzing job advertisement emails. Extract ALL job listings from the emails below.

For each job listing found, extract:
1. Job title
2. Link/URL to the job posting

Return a JSON object of the form {{"jobs": [...]}}. Each element of "jobs" must have:
- emailIndex: the number N of the "=== EMAIL N ===" block the job came from
- emailFrom: the email sender's address
- emailSubject: the email subject line
- emailDate: the email date
- jobTitle: the job title
- jobLink: the URL to apply or view the job

If an email contains multiple job listings, create separate entries for each job.
Only include actual job postings with valid URLs - ignore promotional content without specific jobs.
If there are no job postings, return {{"jobs": []}}.

EMAILS TO ANALYZE:

{emails}

Return ONLY the JSON object, no other text."""


def format_email_block(email: RawEmail, index: int, *, max_chars: int = 0) -> str:
    return EMAIL_BLOCK.format(
        index=index,
        sender=email.sender,
        subject=email.subject,
        date=email.date,
        body=email_text_for_llm(email.body, max_chars=max_chars),
    )


def build_prompt(batch: Sequence[RawEmail], *, max_chars_per_email: int = 0) -> str:
    blocks = [
        format_email_block(email, i, max_chars=max_chars_per_email)
        for i, email in enumerate(batch, start=1)
    ]
    return PROMPT_TEMPLATE.format(emails="\n\n".join(blocks))


def prompt_overhead_text() -> str:
    """The instruction wrapper with no emails in it; constant for a given template."""
    return SYSTEM_PROMPT + "\n" + build_prompt([])
