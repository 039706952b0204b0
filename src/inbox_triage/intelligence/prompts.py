"""Prompt templates for batch classification."""

from __future__ import annotations

import json
from collections.abc import Sequence
from textwrap import dedent

from inbox_triage.core.models import Email

DEFAULT_BODY_CHAR_LIMIT = 1000


def build_batch_payload(
    emails: Sequence[Email], *, body_char_limit: int = DEFAULT_BODY_CHAR_LIMIT
) -> list[dict[str, str]]:
    """Return the per-email records sent to the classifier, bodies truncated."""
    return [
        {
            "id": email.id,
            "sender": email.sender,
            "senderEmail": email.sender_email,
            "subject": email.subject,
            "body": email.body[:body_char_limit],
        }
        for email in emails
    ]


def build_batch_prompt(
    emails: Sequence[Email],
    *,
    categorization_prompt: str,
    action_prompt: str,
    body_char_limit: int = DEFAULT_BODY_CHAR_LIMIT,
) -> str:
    """Compose a JSON-only prompt classifying every email in ``emails``."""
    records = json.dumps(
        build_batch_payload(emails, body_char_limit=body_char_limit),
        ensure_ascii=False,
    )

    # Instruction texts are multi-line; keep them out of the dedent template.
    prompt = """
    You are an email logic engine. Categorize every email below and extract
    its tasks, judging by the sender's address and department as well as the
    tone of the message.

    Category definitions:
    {categorization}

    Task extraction rules:
    {actions}

    Respond strictly with a JSON array containing one object per email:
    [
      {{
        "id": string,          # the email id, copied verbatim
        "reasoning": string,   # one sentence: sender, tone, conclusion
        "category": string,    # Important, Newsletter, Spam, To-Do or Others
        "tasks": [{{"task": string, "deadline": string}}, ...]
      }}
    ]

    Do not include any prose outside the JSON array.

    Input emails:
    {records}
    """

    return (
        dedent(prompt)
        .strip()
        .format(
            categorization=categorization_prompt.strip(),
            actions=action_prompt.strip(),
            records=records,
        )
    )


__all__ = ["DEFAULT_BODY_CHAR_LIMIT", "build_batch_payload", "build_batch_prompt"]
